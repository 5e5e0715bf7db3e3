"""
Error taxonomy and the per-run warning accumulator.

Fatal errors (ParseError, PackageError, FileIOError, ConfigError) are raised
and abort the conversion before anything reaches the output directory.
Recoverable ones (StructureError, AssetError) are recorded in a Diagnostics
instance and reported together once the build is done.
"""


class ConversionError(Exception):
    """Base class for everything the conversion pipeline raises."""
    pass


class ConfigError(ConversionError):
    """Raised when configuration (book.yaml or CLI overrides) is invalid."""
    pass


class ParseError(ConversionError):
    """Malformed source: unterminated code fence or undecodable text."""

    def __init__(self, message, source=None, line=None):
        self.source = source
        self.line = line
        where = source or "<text>"
        if line:
            where = f"{where}:{line}"
        super().__init__(f"{where}: {message}")


class StructureError(ConversionError):
    """Document structure oddity, recovered by synthesizing structure."""
    pass


class AssetError(ConversionError):
    """Referenced image that is missing or unreadable."""

    def __init__(self, src, source=None):
        self.src = src
        self.source = source
        origin = f" (referenced from {source})" if source else ""
        super().__init__(f"Image not found: {src}{origin}")


class PackageError(ConversionError):
    """Manifest, spine or TOC consistency violation found at assembly."""

    def __init__(self, problems):
        self.problems = list(problems)
        lines = "\n".join(f"    - {p}" for p in self.problems)
        super().__init__(f"Package consistency check failed:\n{lines}")


class FileIOError(ConversionError):
    """Read or write failure, surfaced with the path and underlying cause."""

    def __init__(self, path, cause):
        self.path = path
        self.cause = cause
        super().__init__(f"{path}: {cause}")


# ── Diagnostics ────────────────────────────────────────────────────────


class Diagnostics:
    """
    Ordered collection of recoverable errors for one conversion.

    Usage:
        diagnostics = Diagnostics()
        diagnostics.warn(AssetError("img/missing.png", "ch1.md"))
        diagnostics.summary()
    """

    def __init__(self):
        self.warnings = []

    def warn(self, error):
        self.warnings.append(error)

    def __len__(self):
        return len(self.warnings)

    def __iter__(self):
        return iter(self.warnings)

    def of_type(self, error_type):
        return [w for w in self.warnings if isinstance(w, error_type)]

    def messages(self):
        return [str(w) for w in self.warnings]

    def summary(self):
        """Print all collected warnings in one block."""
        if not self.warnings:
            return

        print(f"  ⚠ {len(self.warnings)} warning(s):")
        for w in self.warnings:
            print(f"    {type(w).__name__}: {w}")
