"""
TOC builder: derive the navigation tree from heading levels.

Chapter boundaries are only referenced here, never redefined, so toc_level
and chapter_level can be set independently.
"""

from mdepub.model import TocNode
from mdepub.segment import chapter_for


def build_toc(document, chapters, toc_level=3):
    """Return the root TocNodes for headings of level <= toc_level."""
    entries = []
    for section in document.sections:
        if section.level > toc_level:
            continue
        heading = document.heading(section)
        chapter = chapter_for(chapters, section.heading)
        if section.heading == chapter.top_heading:
            href = chapter.file_name
        else:
            href = f"{chapter.file_name}#{heading.id}"
        entries.append((section.level, heading.text, href))

    nodes, _ = _nest(entries, 0, 0)
    return tuple(nodes)


def chapter_toc(chapters):
    """One flat entry per chapter, used when no heading qualifies."""
    return tuple(TocNode(title=c.title, href=c.file_name) for c in chapters)


def _nest(entries, pos, parent_level):
    nodes = []
    while pos < len(entries) and entries[pos][0] > parent_level:
        level, title, href = entries[pos]
        children, pos = _nest(entries, pos + 1, level)
        nodes.append(TocNode(title=title, href=href, children=tuple(children)))
    return nodes, pos


def flatten(nodes):
    """Depth-first list of every node."""
    flat = []
    for node in nodes:
        flat.append(node)
        flat.extend(flatten(node.children))
    return flat


def depth(nodes):
    if not nodes:
        return 0
    return 1 + max(depth(node.children) for node in nodes)
