"""
Chapter segmenter: cut a LogicalDocument into EPUB content documents.
"""

from mdepub.document import RESERVED_IDS, Slugger
from mdepub.model import Chapter


def segment(document, chapter_level=1):
    """
    Split the document at every heading of level <= chapter_level.

    Blocks ahead of the first cut join the first chapter, so N cut headings
    give exactly N chapters; with no cut heading the whole document is one
    chapter. A synthetic heading is never a cut: headless leading content
    opens the first chapter instead. Chapter order is document order.
    """
    cuts = [
        s.heading for s in document.sections
        if s.level <= chapter_level and not document.heading(s).synthetic
    ]
    if not cuts:
        cuts = [0]
    cuts[0] = 0

    # Prefixed chapter ids must not collide with any heading id
    ids = Slugger(set(document.heading_ids()) | set(RESERVED_IDS))

    bounds = zip(cuts, cuts[1:] + [len(document.blocks)])
    return tuple(_chapter(document, start, end, ids) for start, end in bounds)


def _chapter(document, start, end, ids):
    sections = tuple(
        i for i, s in enumerate(document.sections) if start <= s.heading < end
    )
    top = document.blocks[start]

    # Manifest ids must be XML names, which cannot start with a digit
    ident = top.id if top.id[:1].isalpha() else ids.unique(f"ch-{top.id}")

    return Chapter(
        id=ident,
        file_name=f"{ident}.xhtml",
        title=top.text,
        start=start,
        end=end,
        sections=sections,
        heading_ids=tuple(document.blocks[document.sections[i].heading].id for i in sections),
    )


def chapter_for(chapters, block_index):
    """The chapter whose block range holds block_index."""
    for chapter in chapters:
        if chapter.start <= block_index < chapter.end:
            return chapter
    raise IndexError(f"block {block_index} is outside every chapter")
