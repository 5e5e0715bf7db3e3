"""
Document model builder.

Turns the flat block tuple into a LogicalDocument: every heading gets a
unique slug id, headless leading content is anchored under a synthetic
"Untitled" heading, and sections are computed as index ranges.
"""

import dataclasses

from markdown.extensions.toc import slugify

from mdepub.errors import StructureError
from mdepub.model import Heading, LogicalDocument, Section


UNTITLED = "Untitled"

# Manifest ids of package resources; headings never take these.
RESERVED_IDS = ("nav", "toc", "ncx", "style", "vertical-style", "cover-image")


class Slugger:
    """
    Hands out unique, URL-safe ids in order of first occurrence.

    Usage:
        slugger = Slugger()
        slugger.slug("Introduction")   # "introduction"
        slugger.slug("Introduction")   # "introduction-1"
    """

    def __init__(self, reserved=(), fallback="section"):
        self.used = set(reserved)
        self.fallback = fallback

    def slug(self, text):
        return self.unique(slugify(text, "-") or self.fallback)

    def unique(self, base):
        candidate = base
        n = 0
        while candidate in self.used:
            n += 1
            candidate = f"{base}-{n}"
        self.used.add(candidate)
        return candidate


def build_document(blocks, diagnostics):
    """Assign heading ids and group blocks into sections."""
    blocks = list(blocks)

    if not blocks or not isinstance(blocks[0], Heading):
        source = blocks[0].source if blocks else None
        if blocks:
            diagnostics.warn(StructureError(
                f"{source or 'document'}: content before the first heading, "
                f"placed under a synthetic '{UNTITLED}' section"
            ))
        else:
            diagnostics.warn(StructureError("document is empty"))
        blocks.insert(0, Heading(
            level=1, html=UNTITLED, text=UNTITLED, source=source, synthetic=True,
        ))

    slugger = Slugger(RESERVED_IDS)
    blocks = [
        dataclasses.replace(b, id=slugger.slug(b.text)) if isinstance(b, Heading) else b
        for b in blocks
    ]

    return LogicalDocument(blocks=tuple(blocks), sections=tuple(_sections(blocks)))


def _sections(blocks):
    headings = [i for i, b in enumerate(blocks) if isinstance(b, Heading)]
    sections = []
    stack = []  # indexes into sections, strictly increasing levels

    for n, index in enumerate(headings):
        level = blocks[index].level

        end = len(blocks)
        for later in headings[n + 1:]:
            if blocks[later].level <= level:
                end = later
                break

        body_end = headings[n + 1] if n + 1 < len(headings) else len(blocks)

        while stack and sections[stack[-1]].level >= level:
            stack.pop()

        sections.append(Section(
            heading=index,
            end=end,
            body_end=body_end,
            level=level,
            parent=stack[-1] if stack else None,
        ))
        stack.append(len(sections) - 1)

    return sections
