"""
XHTML renderer.

Serializes each chapter's blocks into an EPUB content document. Image
references are resolved against the Markdown file they came from and
rewritten to package-relative asset paths; a missing file is recorded
as an AssetError and replaced by a visible placeholder.
"""

import dataclasses
import mimetypes
import os
import re
from html import escape, unescape
from urllib.parse import unquote, urlsplit

from mdepub.document import Slugger
from mdepub.errors import AssetError
from mdepub.model import Asset, CodeBlock, Heading, Image, ListBlock, Paragraph, Raw


ASSET_DIR = "assets"

STYLESHEET = "style.css"
VERTICAL_STYLESHEET = "vertical.css"

IMAGE_MEDIA_TYPES = {
    ".gif": "image/gif",
    ".jpeg": "image/jpeg",
    ".jpg": "image/jpeg",
    ".png": "image/png",
    ".svg": "image/svg+xml",
    ".webp": "image/webp",
}

IMG_TAG_RE = re.compile(r"<img\b[^>]*>", re.IGNORECASE)
SRC_ATTR_RE = re.compile(r"""(\bsrc\s*=\s*)(["'])(.*?)\2""", re.IGNORECASE | re.DOTALL)
ALT_ATTR_RE = re.compile(r"""\balt\s*=\s*(["'])(.*?)\1""", re.IGNORECASE | re.DOTALL)

XHTML_TEMPLATE = """\
<?xml version="1.0" encoding="utf-8"?>
<!DOCTYPE html>
<html xmlns="http://www.w3.org/1999/xhtml" xmlns:epub="http://www.idpf.org/2007/ops" xml:lang="{lang}" lang="{lang}"{html_class}>
<head>
<meta charset="utf-8" />
<title>{title}</title>
{links}
</head>
<body>
{body}
</body>
</html>
"""


def stylesheets_for(vertical):
    if vertical:
        return [STYLESHEET, VERTICAL_STYLESHEET]
    return [STYLESHEET]


def xhtml_document(title, body, language="en", vertical=False, stylesheets=(STYLESHEET,)):
    """Wrap body markup in a complete XHTML5 content document."""
    links = "\n".join(
        f'<link rel="stylesheet" type="text/css" href="{escape(href)}" />'
        for href in stylesheets
    )
    return XHTML_TEMPLATE.format(
        lang=escape(language),
        html_class=' class="vertical"' if vertical else "",
        title=escape(title),
        links=links,
        body=body,
    )


# ── Assets ─────────────────────────────────────────────────────────────


def is_external(src):
    """Remote, data: and fragment-only references are left alone."""
    if src.startswith(("//", "#")):
        return True
    scheme = urlsplit(src).scheme
    # A one-letter scheme is a Windows drive letter
    return len(scheme) > 1


def local_path(src, source=None):
    """Absolute path of a relative reference made from a Markdown file."""
    path = unquote(urlsplit(src).path)
    if not os.path.isabs(path):
        base = os.path.dirname(os.path.abspath(source)) if source else os.getcwd()
        path = os.path.join(base, path)
    return os.path.normpath(path)


class AssetCollector:
    """
    Registry of local image files referenced by the document.

    Each distinct file is registered once, in first-reference order, under
    assets/<slug>.<ext>. Missing files are reported once each.
    """

    def __init__(self, diagnostics, directory=ASSET_DIR):
        self.diagnostics = diagnostics
        self.directory = directory
        self.assets = []
        self._by_path = {}
        self._missing = set()
        self._names = Slugger(fallback="image")

    def resolve(self, src, source=None):
        """Package href for src; src itself if external; None if missing."""
        if is_external(src):
            return src

        path = local_path(src, source)
        if path in self._by_path:
            return self._by_path[path].href

        if not os.path.isfile(path) or not os.access(path, os.R_OK):
            if path not in self._missing:
                self._missing.add(path)
                self.diagnostics.warn(AssetError(src, source))
            return None

        return self.add(path).href

    def add(self, path):
        """Register a local file that is known to exist."""
        path = os.path.normpath(os.path.abspath(path))
        if path in self._by_path:
            return self._by_path[path]

        stem, ext = os.path.splitext(os.path.basename(path))
        ext = ext.lower()
        media_type = (
            IMAGE_MEDIA_TYPES.get(ext)
            or mimetypes.guess_type(path)[0]
            or "application/octet-stream"
        )
        asset = Asset(
            path=path,
            href=f"{self.directory}/{self._names.slug(stem)}{ext}",
            media_type=media_type,
        )
        self._by_path[path] = asset
        self.assets.append(asset)
        return asset


def placeholder_text(alt, src):
    return f"[missing image: {alt or src}]"


# ── Renderer ───────────────────────────────────────────────────────────


class Renderer:
    """
    Renders chapters of one LogicalDocument.

    Usage:
        renderer = Renderer(document, assets, language="en")
        chapters = [renderer.render(c) for c in chapters]
    """

    def __init__(self, document, assets, language="en", vertical=False, stylesheets=None):
        self.document = document
        self.assets = assets
        self.language = language
        self.vertical = vertical
        self.stylesheets = stylesheets or stylesheets_for(vertical)

    def render(self, chapter):
        """Return the chapter with its xhtml filled in."""
        blocks = self.document.blocks[chapter.start:chapter.end]
        body = "\n".join(filter(None, (self.render_block(b) for b in blocks)))
        xhtml = xhtml_document(
            chapter.title,
            body,
            language=self.language,
            vertical=self.vertical,
            stylesheets=self.stylesheets,
        )
        return dataclasses.replace(chapter, xhtml=xhtml)

    def render_block(self, block):
        if isinstance(block, Heading):
            if block.synthetic:
                return ""
            inner = self._rewrite_images(block.html, block.source)
            return f'<h{block.level} id="{escape(block.id)}">{inner}</h{block.level}>'

        if isinstance(block, Paragraph):
            return f"<p>{self._rewrite_images(block.html, block.source)}</p>"

        if isinstance(block, ListBlock):
            tag = "ol" if block.ordered else "ul"
            start = f' start="{escape(block.start)}"' if block.ordered and block.start else ""
            items = "".join(
                f"\n<li>{self._rewrite_images(item, block.source)}</li>"
                for item in block.items
            )
            return f"<{tag}{start}>{items}\n</{tag}>"

        if isinstance(block, CodeBlock):
            lang = f' class="language-{escape(block.language)}"' if block.language else ""
            return f"<pre><code{lang}>{escape(block.text, quote=False)}</code></pre>"

        if isinstance(block, Image):
            href = self.assets.resolve(block.src, block.source)
            if href is None:
                text = escape(placeholder_text(block.alt, block.src))
                return f'<p class="missing-image">{text}</p>'
            title = f' title="{escape(block.title)}"' if block.title else ""
            return f'<p class="image"><img src="{escape(href)}" alt="{escape(block.alt)}"{title} /></p>'

        if isinstance(block, Raw):
            return self._rewrite_images(block.html, block.source)

        raise TypeError(f"Unknown block type: {type(block).__name__}")

    def _rewrite_images(self, markup, source):
        if "<img" not in markup.lower():
            return markup

        def rewrite(match):
            tag = match.group(0)
            src_match = SRC_ATTR_RE.search(tag)
            if not src_match:
                return tag

            src = unescape(src_match.group(3))
            href = self.assets.resolve(src, source)

            if href is None:
                alt_match = ALT_ATTR_RE.search(tag)
                alt = unescape(alt_match.group(2)) if alt_match else ""
                return f'<span class="missing-image">{escape(placeholder_text(alt, src))}</span>'

            if href == src:
                return tag

            quote = src_match.group(2)
            return (
                tag[:src_match.start()]
                + f"{src_match.group(1)}{quote}{escape(href)}{quote}"
                + tag[src_match.end():]
            )

        return IMG_TAG_RE.sub(rewrite, markup)
