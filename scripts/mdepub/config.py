"""
Book configuration: load, validate, and provide defaults for book.yaml
and command-line overrides.
"""

import os
import sys

try:
    import yaml
except ImportError:
    print("Error: PyYAML is required. Install with: pip install pyyaml")
    sys.exit(1)

from mdepub.errors import ConfigError


CONFIG_FILENAME = "book.yaml"

# Defaults applied if missing. None means "derive at build time" and the
# package assembler warns when it has to fall back.
DEFAULTS = {
    "title": None,
    "creator": None,
    "language": None,
    "book_id": None,
    "prefix": None,
    "style": None,
    "cover": None,
    "modified": None,
    "vertical": False,
    "toc_level": 3,
    "chapter_level": 1,
    "toc_title": "Table of Contents",
    "landmarks": True,
    "ncx": True,
    "hardbreaks": False,
    "save": False,
}

# (minimum, maximum) for integer options
LEVEL_RANGES = {
    "toc_level": (1, 5),
    "chapter_level": (1, 6),
}

BOOL_FIELDS = ["vertical", "landmarks", "ncx", "hardbreaks", "save"]

STRING_FIELDS = [
    "title", "creator", "language", "book_id", "prefix",
    "style", "cover", "modified", "toc_title",
]


class BookConfig:
    """
    Loaded, validated conversion configuration.

    Usage:
        config = BookConfig.load("book.yaml", overrides={"toc_level": 2})
        config.toc_level      # 2
        config.title          # None if not set
        config.get("style")   # None if not set
    """

    def __init__(self, data=None, base_dir=None):
        data = dict(data or {})

        unknown = sorted(set(data) - set(DEFAULTS))
        if unknown:
            raise ConfigError(f"Unknown configuration keys: {', '.join(unknown)}")

        for key, default in DEFAULTS.items():
            if data.get(key) is None:
                data[key] = default

        _validate(data)

        self._data = data
        self.base_dir = base_dir or os.getcwd()

    @classmethod
    def load(cls, yaml_path=None, overrides=None):
        """
        Load book.yaml (if given) and apply overrides on top.

        Override values of None are ignored so unset CLI flags never mask
        the YAML file.
        """
        data = {}
        base_dir = None

        if yaml_path:
            if not os.path.exists(yaml_path):
                raise ConfigError(f"No config file found at {yaml_path}")

            with open(yaml_path, encoding="utf-8") as f:
                loaded = yaml.safe_load(f)

            if loaded is None:
                loaded = {}
            if not isinstance(loaded, dict):
                raise ConfigError(
                    f"{os.path.basename(yaml_path)} must be a YAML mapping, "
                    f"got {type(loaded).__name__}"
                )
            data.update(loaded)
            base_dir = os.path.dirname(os.path.abspath(yaml_path))

        for key, value in (overrides or {}).items():
            if value is not None:
                data[key] = value

        return cls(data, base_dir=base_dir)

    # ── Attribute access ───────────────────────────────────

    def __getattr__(self, name):
        if name.startswith("_"):
            raise AttributeError(name)
        try:
            return self._data[name]
        except KeyError:
            raise AttributeError(f"BookConfig has no field '{name}'")

    def get(self, key, default=None):
        return self._data.get(key, default)

    def __getitem__(self, key):
        return self._data[key]

    def __contains__(self, key):
        return key in self._data

    def replace(self, **changes):
        """Return a copy with some fields changed (validated again)."""
        data = dict(self._data)
        data.update(changes)
        return BookConfig(data, base_dir=self.base_dir)

    # ── Convenience ────────────────────────────────────────

    def resolve_path(self, value):
        """Resolve a path option relative to the config file's directory."""
        if not value:
            return None
        path = os.path.expanduser(value)
        if os.path.isabs(path):
            return path
        return os.path.normpath(os.path.join(self.base_dir, path))

    def summary(self):
        """Print a short config summary."""
        print(f"\n  Title:    {self.title or '(from input name)'}")
        if self.creator:
            print(f"  Creator:  {self.creator}")
        print(f"  Language: {self.language or '(default)'}")
        print(f"  Chapters: level <= {self.chapter_level}")
        print(f"  TOC:      level <= {self.toc_level}")
        if self.vertical:
            print("  Layout:   vertical (right-to-left)")
        if self.hardbreaks:
            print("  Breaks:   every newline")


def _validate(data):
    for key, (low, high) in LEVEL_RANGES.items():
        value = data[key]
        if isinstance(value, bool) or not isinstance(value, int):
            raise ConfigError(f"{key} must be an integer, got {value!r}")
        if not low <= value <= high:
            raise ConfigError(f"{key} must be between {low} and {high}, got {value}")

    for key in BOOL_FIELDS:
        if not isinstance(data[key], bool):
            raise ConfigError(f"{key} must be true or false, got {data[key]!r}")

    for key in STRING_FIELDS:
        value = data[key]
        if value is None:
            continue
        # YAML turns bare dates and numbers into non-strings
        if not isinstance(value, str):
            data[key] = str(value)
        if not data[key].strip():
            data[key] = DEFAULTS[key]
