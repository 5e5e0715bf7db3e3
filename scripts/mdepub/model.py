"""
Data model shared by the conversion stages.

Blocks are a closed set of frozen dataclasses. Sections are index ranges
over the flat block tuple of a LogicalDocument; the tree is derived from
heading levels on demand.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple, Union


# ── Blocks ─────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Heading:
    level: int
    html: str                   # inline content, rendered XHTML
    text: str                   # plain-text label for TOC and slugs
    id: Optional[str] = None    # assigned by the document builder
    source: Optional[str] = None
    synthetic: bool = False     # inserted to anchor headless content


@dataclass(frozen=True)
class Paragraph:
    html: str
    source: Optional[str] = None


@dataclass(frozen=True)
class ListBlock:
    ordered: bool
    items: Tuple[str, ...]      # inner XHTML of each <li>
    start: Optional[str] = None
    source: Optional[str] = None


@dataclass(frozen=True)
class CodeBlock:
    language: Optional[str]
    text: str
    source: Optional[str] = None


@dataclass(frozen=True)
class Image:
    src: str
    alt: str = ""
    title: Optional[str] = None
    source: Optional[str] = None


@dataclass(frozen=True)
class Raw:
    html: str
    source: Optional[str] = None


Block = Union[Heading, Paragraph, ListBlock, CodeBlock, Image, Raw]


@dataclass(frozen=True)
class Source:
    """One Markdown input: its path (None for in-memory text) and text."""
    path: Optional[str]
    text: str


# ── Document structure ─────────────────────────────────────────────────


@dataclass(frozen=True)
class Section:
    heading: int                # index of the heading block
    end: int                    # exclusive; next heading of level <= this one
    body_end: int               # exclusive; next heading of any level
    level: int
    parent: Optional[int] = None  # index into LogicalDocument.sections


@dataclass(frozen=True)
class LogicalDocument:
    blocks: Tuple[Block, ...]
    sections: Tuple[Section, ...]

    def heading(self, section):
        return self.blocks[section.heading]

    def roots(self):
        return [i for i, s in enumerate(self.sections) if s.parent is None]

    def children(self, index):
        return [i for i, s in enumerate(self.sections) if s.parent == index]

    def heading_ids(self):
        return [self.blocks[s.heading].id for s in self.sections]


@dataclass(frozen=True)
class Chapter:
    id: str
    file_name: str
    title: str
    start: int                  # block range [start, end)
    end: int
    sections: Tuple[int, ...]
    heading_ids: Tuple[str, ...]
    xhtml: Optional[str] = None

    @property
    def top_heading(self):
        """Index of the heading that opens the chapter."""
        return self.start


@dataclass(frozen=True)
class TocNode:
    title: str
    href: str
    children: Tuple["TocNode", ...] = ()


# ── Package ────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class ManifestEntry:
    id: str
    href: str
    media_type: str
    properties: Optional[str] = None


@dataclass(frozen=True)
class Asset:
    path: str                   # local file
    href: str                   # package relative, e.g. assets/map.png
    media_type: str


@dataclass
class Package:
    manifest: List[ManifestEntry]
    spine: List[str]
    files: Dict[str, str] = field(default_factory=dict)    # path -> text
    copies: Dict[str, str] = field(default_factory=dict)   # path -> local file
    chapters: Tuple[Chapter, ...] = ()
    toc: Tuple[TocNode, ...] = ()

    def manifest_item(self, item_id):
        for entry in self.manifest:
            if entry.id == item_id:
                return entry
        return None
