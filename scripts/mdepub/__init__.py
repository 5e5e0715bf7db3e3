"""
mdepub: Markdown to EPUB 3 conversion toolchain.

Public API:
    from mdepub.config import BookConfig
    from mdepub.builder import EpubBuilder, convert
    from mdepub.parser import read_sources
    from mdepub.writer import publish, zip_archiver
    from mdepub.epubcheck import validate_epub
"""

__version__ = "0.3.0"
