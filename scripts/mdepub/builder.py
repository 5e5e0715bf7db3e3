"""
EPUB builder.

Pipeline: read → parse → document model → chapters + TOC → render →
assemble → staged write/zip → epubcheck (optional).

`convert()` is the side-effect-free core; `EpubBuilder` adds input
discovery, console output and publishing.
"""

import os
from dataclasses import dataclass
from typing import Tuple

from mdepub.document import build_document
from mdepub.epubcheck import validate_epub
from mdepub.errors import AssetError, ConversionError, Diagnostics, FileIOError
from mdepub.model import Chapter, LogicalDocument, Package, TocNode
from mdepub.package import Metadata, assemble
from mdepub.parser import parse_sources, read_sources
from mdepub.render import AssetCollector, Renderer
from mdepub.resolve import find_markdown_files, input_name, output_prefix
from mdepub.segment import segment
from mdepub.toc import build_toc
from mdepub.writer import publish, zip_archiver


@dataclass
class Conversion:
    package: Package
    document: LogicalDocument
    chapters: Tuple[Chapter, ...]
    toc: Tuple[TocNode, ...]
    diagnostics: Diagnostics


def convert(sources, config, fallback_title="Untitled", diagnostics=None):
    """
    Convert Markdown sources into an assembled (unwritten) Package.

    Args:
        sources:        Source values in reading order
        config:         BookConfig
        fallback_title: title used when config has none
        diagnostics:    Diagnostics to record warnings into (new if None)

    Raises ParseError, PackageError, FileIOError, ConfigError.
    """
    if diagnostics is None:
        diagnostics = Diagnostics()

    blocks = parse_sources(sources, hardbreaks=config.hardbreaks)
    document = build_document(blocks, diagnostics)
    chapters = segment(document, config.chapter_level)
    toc = build_toc(document, chapters, config.toc_level)

    metadata = Metadata.resolve(config, fallback_title, sources, diagnostics)

    stylesheet = None
    if config.style:
        stylesheet = _read_text(config.resolve_path(config.style))

    assets = AssetCollector(diagnostics)
    cover = None
    if config.cover:
        cover_path = config.resolve_path(config.cover)
        if os.path.isfile(cover_path):
            cover = assets.add(cover_path)
        else:
            diagnostics.warn(AssetError(config.cover, "cover"))

    renderer = Renderer(
        document, assets, language=metadata.language, vertical=metadata.vertical,
    )
    chapters = tuple(renderer.render(chapter) for chapter in chapters)

    package = assemble(
        chapters,
        toc,
        assets.assets,
        metadata,
        stylesheet=stylesheet,
        cover=cover,
        toc_title=config.toc_title,
        landmarks=config.landmarks,
        ncx=config.ncx,
    )

    return Conversion(
        package=package,
        document=document,
        chapters=chapters,
        toc=package.toc,
        diagnostics=diagnostics,
    )


def _read_text(path):
    try:
        with open(path, encoding="utf-8") as f:
            return f.read()
    except (OSError, UnicodeDecodeError) as e:
        raise FileIOError(path, getattr(e, "strerror", None) or e) from e


class EpubBuilder:
    """
    Builds one EPUB from a Markdown file or directory.

    Usage:
        builder = EpubBuilder(config, "manuscript/", "output/", verbose=True)
        ok = builder.build()
    """

    format_name = "EPUB"
    extension = ".epub"

    def __init__(self, config, input_path, output_dir, verbose=False,
                 archiver=zip_archiver, validate=False):
        self.config = config
        self.input_path = input_path
        self.output_dir = output_dir
        self.verbose = verbose
        self.archiver = archiver
        self.validate = validate
        self.conversion = None
        self.result = None

    # ── Output path ────────────────────────────────────────

    @property
    def name(self):
        return self.config.prefix or output_prefix(input_name(self.input_path))

    @property
    def output_file(self):
        return os.path.join(self.output_dir, f"{self.name}{self.extension}")

    # ── Logging ────────────────────────────────────────────

    def log(self, msg):
        if self.verbose:
            print(msg)

    def header(self):
        title = self.config.title or input_name(self.input_path)
        print(f"\n{'─' * 60}")
        print(f"  Building {self.format_name}: {title}")
        print(f"{'─' * 60}")

    # ── Build ──────────────────────────────────────────────

    def build(self):
        """Execute the build. Returns True on success, False on failure."""
        self.header()
        diagnostics = Diagnostics()

        try:
            files = find_markdown_files(self.input_path)
            self.log(f"  Input: {len(files)} file(s)")
            for path in files:
                self.log(f"    {os.path.basename(path)}")

            sources = read_sources(files)
            conversion = convert(
                sources, self.config, input_name(self.input_path), diagnostics,
            )
            self.log(f"  Chapters: {len(conversion.chapters)}")
            self.log(f"  Assets:   {len(conversion.package.copies)}")

            if self.archiver is None:
                self.log("  Archiving unavailable: writing package directory only")

            result = publish(
                conversion.package,
                self.output_dir,
                self.name,
                archiver=self.archiver,
                save=self.config.save,
                protect=[self.input_path] + files,
            )
        except ConversionError as e:
            diagnostics.summary()
            print(f"  ✗ {type(e).__name__}: {e}")
            return False

        self.conversion = conversion
        self.result = result

        diagnostics.summary()
        for path in (result["epub"], result["directory"]):
            if path:
                print(f"  ✓ {path}")

        if self.validate and result["epub"]:
            validate_epub(result["epub"], verbose=self.verbose)

        return True
