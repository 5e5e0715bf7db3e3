"""
Markdown parser.

Each source is converted with Python-Markdown. A tree processor registered
after all of Python-Markdown's own keeps the finished element tree, and
its top-level elements are mapped onto Block values. Inline content is
serialized the same way Python-Markdown would serialize it (serializer
plus postprocessors), so stashed raw HTML and escapes come back intact.

Only an unterminated code fence or undecodable input is fatal; anything
else the grammar does not understand ends up as a Paragraph or Raw block.
"""

import html
import re

import markdown
from markdown.treeprocessors import Treeprocessor
from markdown.util import HTML_PLACEHOLDER_RE

from mdepub.errors import FileIOError, ParseError
from mdepub.model import CodeBlock, Heading, Image, ListBlock, Paragraph, Raw, Source


MARKDOWN_EXTENSIONS = ["fenced_code", "tables", "sane_lists"]

# Every newline inside a paragraph becomes <br />
HARDBREAK_EXTENSIONS = ["nl2br"]

HEADING_TAGS = {f"h{n}": n for n in range(1, 7)}

# Fences as the fenced_code extension recognizes them: column 0, closed
# by an identical fence.
FENCE_RE = re.compile(r"^(`{3,}|~{3,})(.*)$")

STASHED_CODE_RE = re.compile(
    r'^<pre[^>]*><code(?: class="language-([^"]*)")?[^>]*>(.*)</code></pre>$',
    re.DOTALL,
)

TAG_RE = re.compile(r"<[^>]+>")
SPACE_RE = re.compile(r"\s+")


class _TreeCapture(Treeprocessor):
    """Keeps a reference to the finished element tree."""

    root = None

    def run(self, root):
        self.root = root


# ── Reading ────────────────────────────────────────────────────────────


def read_sources(paths):
    """Read Markdown files as UTF-8 (a BOM is tolerated)."""
    sources = []
    for path in paths:
        try:
            with open(path, "rb") as f:
                data = f.read()
        except OSError as e:
            raise FileIOError(path, e.strerror or e) from e

        try:
            text = data.decode("utf-8-sig")
        except UnicodeDecodeError as e:
            raise ParseError(
                f"not valid UTF-8 ({e.reason} at byte {e.start})", source=path
            ) from e

        sources.append(Source(path, text))
    return sources


# ── Parsing ────────────────────────────────────────────────────────────


def parse_sources(sources, hardbreaks=False):
    """Parse every source in order into one flat block tuple."""
    blocks = []
    for source in sources:
        blocks.extend(parse_markdown(source.text, source.path, hardbreaks))
    return tuple(blocks)


def parse_markdown(text, source=None, hardbreaks=False):
    """
    Parse one Markdown text into a list of blocks.

    With hardbreaks, single newlines inside paragraphs are kept as line
    breaks (prose where every line matters, such as Japanese fiction).
    """
    check_fences(text, source)

    extensions = MARKDOWN_EXTENSIONS + (HARDBREAK_EXTENSIONS if hardbreaks else [])
    md = markdown.Markdown(extensions=extensions, output_format="xhtml")
    capture = _TreeCapture(md)
    md.treeprocessors.register(capture, "mdepub_capture", -100)
    md.convert(text)

    if capture.root is None:
        # Python-Markdown short-circuits blank input
        return []

    return [_to_block(md, element, source) for element in capture.root]


def check_fences(text, source=None):
    """Raise ParseError if a fenced code block is never closed."""
    fence = None
    opened_at = None

    for number, line in enumerate(text.splitlines(), 1):
        if fence is None:
            match = FENCE_RE.match(line)
            if not match:
                continue
            marker, info = match.groups()
            # ```code``` on one line is an inline code span, not a fence
            if marker[0] == "`" and "`" in info:
                continue
            fence, opened_at = marker, number
        elif line.rstrip() == fence:
            fence = None

    if fence is not None:
        raise ParseError(f"unterminated code fence '{fence}'", source, opened_at)


def _to_block(md, element, source):
    tag = element.tag

    if tag in HEADING_TAGS:
        inner = _inner_html(md, element)
        return Heading(
            level=HEADING_TAGS[tag],
            html=inner,
            text=plain_text(inner),
            source=source,
        )

    if tag == "p":
        image = _lone_image(element)
        if image is not None:
            return Image(
                src=image.get("src", ""),
                alt=image.get("alt", ""),
                title=image.get("title"),
                source=source,
            )

        stashed = _stashed_block(md, element)
        if stashed is not None:
            match = STASHED_CODE_RE.match(stashed.strip())
            if match:
                language, code = match.groups()
                return CodeBlock(
                    language=html.unescape(language) if language else None,
                    text=html.unescape(code).rstrip("\n"),
                    source=source,
                )
            return Raw(html=stashed.strip(), source=source)

        return Paragraph(html=_inner_html(md, element), source=source)

    if tag == "pre":
        code = element.find("code")
        target = code if code is not None else element
        return CodeBlock(
            language=None,
            text=html.unescape("".join(target.itertext())).rstrip("\n"),
            source=source,
        )

    if tag in ("ul", "ol"):
        return ListBlock(
            ordered=tag == "ol",
            items=tuple(_inner_html(md, li) for li in element if li.tag == "li"),
            start=element.get("start"),
            source=source,
        )

    return Raw(html=_serialize(md, element), source=source)


# ── Element helpers ────────────────────────────────────────────────────


def _serialize(md, element):
    markup = md.serializer(element)
    for processor in md.postprocessors:
        markup = processor.run(markup)
    return markup.strip()


def _inner_html(md, element):
    markup = _serialize(md, element)
    if "</" not in markup:
        return ""
    return markup[markup.index(">") + 1:markup.rindex("</")].strip()


def _lone_image(element):
    """The <img> of a paragraph that holds nothing else, or None."""
    if len(element) != 1 or (element.text or "").strip():
        return None
    child = element[0]
    if child.tag != "img" or (child.tail or "").strip():
        return None
    return child


def _stashed_block(md, element):
    """Raw block-level HTML that Python-Markdown stashed for this paragraph."""
    if len(element) or not element.text:
        return None

    match = HTML_PLACEHOLDER_RE.fullmatch(element.text.strip())
    if not match:
        return None

    index = int(match.group(1))
    if index >= len(md.htmlStash.rawHtmlBlocks):
        return None

    stashed = md.htmlStash.rawHtmlBlocks[index]
    if not isinstance(stashed, str):
        stashed = md.serializer(stashed)

    tag = re.match(r"^\s*</?([^\s>/]+)", stashed)
    if not tag:
        return None
    name = tag.group(1)
    if name[0] in "!?@%" or md.is_block_level(name):
        return stashed
    return None


def plain_text(markup):
    """Strip tags and entities from an XHTML fragment."""
    return SPACE_RE.sub(" ", html.unescape(TAG_RE.sub("", markup))).strip()
