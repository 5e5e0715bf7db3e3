"""
Package assembler.

Builds every file of the EPUB 3 package (mimetype, container.xml, OPF,
nav document, NCX, stylesheets, chapters, assets) as an in-memory Package,
then checks manifest/spine/TOC consistency before anything is written.

OPF layout:
    metadata   dc:identifier, dc:title, dc:language, dc:creator, modified
    manifest   nav, ncx, stylesheets, chapters, assets
    spine      chapters in document order
"""

import os
import re
import time
import uuid
from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timezone
from html import escape
from typing import Optional

from mdepub.document import Slugger
from mdepub.errors import ConfigError, ConversionError, PackageError
from mdepub.model import ManifestEntry, Package
from mdepub.render import (
    IMG_TAG_RE,
    SRC_ATTR_RE,
    STYLESHEET,
    VERTICAL_STYLESHEET,
    stylesheets_for,
    xhtml_document,
)
from mdepub.toc import chapter_toc, depth, flatten


MIMETYPE = "application/epub+zip"
XHTML_MEDIA_TYPE = "application/xhtml+xml"
NCX_MEDIA_TYPE = "application/x-dtbncx+xml"

CONTENT_DIR = "OEBPS"
OPF_PATH = f"{CONTENT_DIR}/package.opf"
NAV_HREF = "nav.xhtml"
NCX_HREF = "toc.ncx"

DEFAULT_LANGUAGE = "en"
MODIFIED_FORMAT = "%Y-%m-%dT%H:%M:%SZ"
MODIFIED_RE = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}Z$")
SAFE_HREF_RE = re.compile(r"^[A-Za-z0-9._~/-]+$")
REMOTE_SRC_RE = re.compile(r"^https?://", re.IGNORECASE)

CONTAINER_XML = f"""\
<?xml version="1.0" encoding="utf-8"?>
<container version="1.0" xmlns="urn:oasis:names:tc:opendocument:xmlns:container">
  <rootfiles>
    <rootfile full-path="{OPF_PATH}" media-type="application/oebps-package+xml" />
  </rootfiles>
</container>
"""

DEFAULT_CSS = """\
body {
    font-family: serif;
    line-height: 1.6;
    margin: 0 5%;
}

h1, h2, h3, h4, h5, h6 {
    line-height: 1.25;
    margin-top: 1.5em;
}

pre, code {
    font-family: monospace;
}

pre {
    white-space: pre-wrap;
}

blockquote {
    margin: 1em 2em;
}

img {
    max-width: 100%;
    height: auto;
}

p.image {
    text-align: center;
}

.missing-image {
    color: #888;
    font-style: italic;
}
"""

VERTICAL_CSS = """\
html.vertical {
    writing-mode: vertical-rl;
    -webkit-writing-mode: vertical-rl;
    -epub-writing-mode: vertical-rl;
}
"""


class MetadataWarning(ConversionError):
    """A metadata field was missing and a default was used."""
    pass


# ── Metadata ───────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Metadata:
    title: str
    language: str
    book_id: str
    modified: str
    creator: Optional[str] = None
    vertical: bool = False

    @classmethod
    def resolve(cls, config, fallback_title, sources, diagnostics):
        """Fill in missing title, language, creator, id and timestamp."""
        title = config.title
        if not title:
            title = fallback_title
            diagnostics.warn(MetadataWarning(f"No title given, using '{title}'"))

        language = config.language
        if not language:
            language = DEFAULT_LANGUAGE
            diagnostics.warn(MetadataWarning(f"No language given, using '{language}'"))

        creator = config.creator
        if not creator:
            diagnostics.warn(MetadataWarning("No creator given, dc:creator omitted"))

        book_id = config.book_id or default_book_id(title, sources)

        return cls(
            title=title,
            language=language,
            book_id=book_id,
            modified=modified_timestamp(config.modified, sources),
            creator=creator,
            vertical=config.vertical,
        )


def default_book_id(title, sources):
    """Name-based UUID over title and text: stable across identical runs."""
    digest = "\0".join([title] + [s.text for s in sources])
    return f"urn:uuid:{uuid.uuid5(uuid.NAMESPACE_URL, 'mdepub:' + digest)}"


def modified_timestamp(explicit, sources):
    """
    dcterms:modified value. Order: explicit value, SOURCE_DATE_EPOCH,
    newest source file mtime, current time.
    """
    if explicit:
        if not MODIFIED_RE.match(explicit):
            raise ConfigError(f"modified must look like 2024-01-31T12:00:00Z, got {explicit!r}")
        return explicit

    epoch = os.environ.get("SOURCE_DATE_EPOCH")
    if epoch:
        try:
            stamp = int(epoch)
        except ValueError:
            raise ConfigError(f"SOURCE_DATE_EPOCH must be an integer, got {epoch!r}")
    else:
        mtimes = [
            os.path.getmtime(s.path)
            for s in sources
            if s.path and os.path.exists(s.path)
        ]
        stamp = max(mtimes) if mtimes else time.time()

    return datetime.fromtimestamp(int(stamp), timezone.utc).strftime(MODIFIED_FORMAT)


# ── Assembly ───────────────────────────────────────────────────────────


def assemble(chapters, toc, assets, metadata, stylesheet=None, cover=None,
             toc_title="Table of Contents", landmarks=True, ncx=True):
    """
    Build the complete Package for rendered chapters.

    Args:
        chapters:   rendered Chapters in reading order
        toc:        root TocNodes (an empty TOC falls back to one per chapter)
        assets:     Assets to copy under OEBPS/
        metadata:   resolved Metadata
        stylesheet: custom CSS text, or None for the built-in stylesheet
        cover:      Asset of the cover image (also present in assets), or None
    """
    toc = tuple(toc) or chapter_toc(chapters)
    stylesheets = stylesheets_for(metadata.vertical)

    manifest = [ManifestEntry("nav", NAV_HREF, XHTML_MEDIA_TYPE, "nav")]
    if ncx:
        manifest.append(ManifestEntry("ncx", NCX_HREF, NCX_MEDIA_TYPE))
    manifest.append(ManifestEntry("style", STYLESHEET, "text/css"))
    if metadata.vertical:
        manifest.append(ManifestEntry("vertical-style", VERTICAL_STYLESHEET, "text/css"))

    for chapter in chapters:
        manifest.append(ManifestEntry(
            chapter.id, chapter.file_name, XHTML_MEDIA_TYPE,
            _content_properties(chapter.xhtml),
        ))

    used = {entry.id for entry in manifest}
    ids = Slugger(used | {"cover-image"}, fallback="image")
    for asset in assets:
        if cover is not None and asset.path == cover.path:
            manifest.append(ManifestEntry("cover-image", asset.href, asset.media_type, "cover-image"))
        else:
            stem = os.path.splitext(os.path.basename(asset.href))[0]
            manifest.append(ManifestEntry(ids.unique(f"img-{stem}"), asset.href, asset.media_type))

    spine = [chapter.id for chapter in chapters]

    files = {
        "mimetype": MIMETYPE,
        "META-INF/container.xml": CONTAINER_XML,
        OPF_PATH: build_opf(metadata, manifest, spine, ncx=ncx, cover=cover is not None),
        f"{CONTENT_DIR}/{NAV_HREF}": build_nav(
            toc, chapters, metadata, toc_title, landmarks, stylesheets,
        ),
    }
    if ncx:
        files[f"{CONTENT_DIR}/{NCX_HREF}"] = build_ncx(toc, metadata)
    files[f"{CONTENT_DIR}/{STYLESHEET}"] = stylesheet if stylesheet is not None else DEFAULT_CSS
    if metadata.vertical:
        files[f"{CONTENT_DIR}/{VERTICAL_STYLESHEET}"] = VERTICAL_CSS
    for chapter in chapters:
        files[f"{CONTENT_DIR}/{chapter.file_name}"] = chapter.xhtml

    copies = {f"{CONTENT_DIR}/{asset.href}": asset.path for asset in assets}

    package = Package(
        manifest=manifest,
        spine=spine,
        files=files,
        copies=copies,
        chapters=tuple(chapters),
        toc=toc,
    )
    verify(package)
    return package


def _content_properties(xhtml):
    props = []
    if "<svg" in xhtml:
        props.append("svg")
    # Only real <img> tags count, not escaped markup in code blocks
    for tag in IMG_TAG_RE.findall(xhtml):
        src = SRC_ATTR_RE.search(tag)
        if src and REMOTE_SRC_RE.match(src.group(3)):
            props.append("remote-resources")
            break
    return " ".join(props) or None


def build_opf(metadata, manifest, spine, ncx=True, cover=False):
    lines = [
        '<?xml version="1.0" encoding="utf-8"?>',
        f'<package xmlns="http://www.idpf.org/2007/opf" version="3.0" '
        f'unique-identifier="book-id" xml:lang="{escape(metadata.language)}">',
        '  <metadata xmlns:dc="http://purl.org/dc/elements/1.1/">',
        f'    <dc:identifier id="book-id">{escape(metadata.book_id)}</dc:identifier>',
        f"    <dc:title>{escape(metadata.title)}</dc:title>",
        f"    <dc:language>{escape(metadata.language)}</dc:language>",
    ]
    if metadata.creator:
        lines.append(f"    <dc:creator>{escape(metadata.creator)}</dc:creator>")
    lines.append(f'    <meta property="dcterms:modified">{metadata.modified}</meta>')
    if cover:
        lines.append('    <meta name="cover" content="cover-image" />')
    if metadata.vertical:
        lines.append('    <meta name="primary-writing-mode" content="vertical-rl" />')
    lines.append("  </metadata>")

    lines.append("  <manifest>")
    for entry in manifest:
        props = f' properties="{entry.properties}"' if entry.properties else ""
        lines.append(
            f'    <item id="{entry.id}" href="{escape(entry.href)}" '
            f'media-type="{entry.media_type}"{props} />'
        )
    lines.append("  </manifest>")

    attrs = ' toc="ncx"' if ncx else ""
    if metadata.vertical:
        attrs += ' page-progression-direction="rtl"'
    lines.append(f"  <spine{attrs}>")
    for idref in spine:
        lines.append(f'    <itemref idref="{idref}" />')
    lines.append("  </spine>")
    lines.append("</package>")

    return "\n".join(lines) + "\n"


def build_nav(toc, chapters, metadata, toc_title, landmarks, stylesheets):
    parts = [
        '<nav epub:type="toc" id="toc">',
        f"<h1>{escape(toc_title)}</h1>",
        _nav_list(toc),
        "</nav>",
    ]

    if landmarks and chapters:
        first = chapters[0]
        parts.extend([
            '<nav epub:type="landmarks" id="landmarks" hidden="hidden">',
            "<ol>",
            f'<li><a epub:type="toc" href="{NAV_HREF}#toc">{escape(toc_title)}</a></li>',
            f'<li><a epub:type="bodymatter" href="{escape(first.file_name)}">'
            f"{escape(first.title or first.id)}</a></li>",
            "</ol>",
            "</nav>",
        ])

    return xhtml_document(
        toc_title,
        "\n".join(parts),
        language=metadata.language,
        vertical=metadata.vertical,
        stylesheets=stylesheets,
    )


def _nav_list(nodes):
    items = []
    for node in nodes:
        link = f'<a href="{escape(node.href)}">{escape(node.title or node.href)}</a>'
        if node.children:
            items.append(f"<li>{link}\n{_nav_list(node.children)}\n</li>")
        else:
            items.append(f"<li>{link}</li>")
    return "<ol>\n" + "\n".join(items) + "\n</ol>"


def build_ncx(toc, metadata):
    counter = [0]

    def nav_points(nodes, indent):
        out = []
        for node in nodes:
            counter[0] += 1
            n = counter[0]
            pad = "  " * indent
            out.append(f'{pad}<navPoint id="navpoint-{n}" playOrder="{n}">')
            out.append(f"{pad}  <navLabel><text>{escape(node.title or node.href)}</text></navLabel>")
            out.append(f'{pad}  <content src="{escape(node.href)}" />')
            out.extend(nav_points(node.children, indent + 1))
            out.append(f"{pad}</navPoint>")
        return out

    lines = [
        '<?xml version="1.0" encoding="utf-8"?>',
        f'<ncx xmlns="http://www.daisy.org/z3986/2005/ncx/" version="2005-1" '
        f'xml:lang="{escape(metadata.language)}">',
        "<head>",
        f'  <meta name="dtb:uid" content="{escape(metadata.book_id)}" />',
        f'  <meta name="dtb:depth" content="{max(depth(toc), 1)}" />',
        '  <meta name="dtb:totalPageCount" content="0" />',
        '  <meta name="dtb:maxPageNumber" content="0" />',
        "</head>",
        f"<docTitle><text>{escape(metadata.title)}</text></docTitle>",
        "<navMap>",
    ]
    lines.extend(nav_points(toc, 1))
    lines.append("</navMap>")
    lines.append("</ncx>")
    return "\n".join(lines) + "\n"


# ── Consistency check ──────────────────────────────────────────────────


def verify(package):
    """Raise PackageError listing every manifest/spine/TOC inconsistency."""
    problems = []
    manifest = package.manifest

    if package.files.get("mimetype") != MIMETYPE:
        problems.append("mimetype file missing or wrong")

    for item_id, count in Counter(e.id for e in manifest).items():
        if count > 1:
            problems.append(f"manifest id '{item_id}' used {count} times")
    for href, count in Counter(e.href for e in manifest).items():
        if count > 1:
            problems.append(f"manifest href '{href}' used {count} times")

    for entry in manifest:
        path = f"{CONTENT_DIR}/{entry.href}"
        if path not in package.files and path not in package.copies:
            problems.append(f"manifest item '{entry.id}' has no file at {path}")
        if not SAFE_HREF_RE.match(entry.href):
            problems.append(f"manifest href '{entry.href}' is not URL safe")

    by_id = {e.id: e for e in manifest}
    chapter_ids = [c.id for c in package.chapters]
    if package.spine != chapter_ids:
        problems.append(f"spine {package.spine} does not match chapter order {chapter_ids}")

    for idref in package.spine:
        if idref not in by_id:
            problems.append(f"spine item '{idref}' not in manifest")

    for chapter in package.chapters:
        entry = by_id.get(chapter.id)
        if entry is None or entry.href != chapter.file_name:
            problems.append(f"chapter '{chapter.id}' has no manifest entry for {chapter.file_name}")

    for entry in manifest:
        if (entry.media_type == XHTML_MEDIA_TYPE
                and "nav" not in (entry.properties or "").split()
                and entry.id not in package.spine):
            problems.append(f"content document '{entry.id}' missing from spine")

    by_file = {c.file_name: c for c in package.chapters}
    order = {c.file_name: i for i, c in enumerate(package.chapters)}
    last = -1
    for node in flatten(package.toc):
        file_name, _, fragment = node.href.partition("#")
        chapter = by_file.get(file_name)
        if chapter is None:
            problems.append(f"TOC entry '{node.title}' points at unknown file {file_name}")
            continue
        if fragment and (fragment not in chapter.heading_ids
                         or f'id="{fragment}"' not in (chapter.xhtml or "")):
            problems.append(f"TOC entry '{node.title}' points at missing anchor {node.href}")
        if order[file_name] < last:
            problems.append(f"TOC entry '{node.title}' is out of spine order")
        last = max(last, order[file_name])

    if problems:
        raise PackageError(problems)
