"""
Chapter segmentation at the configured heading level.
"""

import pytest

from mdepub.document import build_document
from mdepub.errors import Diagnostics
from mdepub.model import Heading, Paragraph
from mdepub.segment import chapter_for, segment


def heading(level, text):
    return Heading(level=level, html=text, text=text)


def document_of(*blocks):
    return build_document(blocks, Diagnostics())


@pytest.mark.parametrize("count", [1, 2, 5])
def test_one_chapter_per_cut_heading(count):
    blocks = []
    for n in range(count):
        blocks += [heading(1, f"Part {n}"), heading(2, "Detail"), Paragraph(html="x")]

    chapters = segment(document_of(*blocks), chapter_level=1)

    assert len(chapters) == count
    assert [c.title for c in chapters] == [f"Part {n}" for n in range(count)]


def test_no_cut_heading_gives_one_chapter():
    document = document_of(heading(2, "Only"), Paragraph(html="x"), heading(3, "Deeper"))

    chapters = segment(document, chapter_level=1)

    assert len(chapters) == 1
    assert (chapters[0].start, chapters[0].end) == (0, 3)


def test_blocks_ahead_of_first_cut_join_first_chapter():
    document = document_of(
        heading(2, "Preface"),
        Paragraph(html="p"),
        heading(1, "One"),
        heading(1, "Two"),
    )

    chapters = segment(document, chapter_level=1)

    assert len(chapters) == 2
    assert (chapters[0].start, chapters[0].end) == (0, 3)
    assert chapters[0].id == "preface"
    assert chapters[0].heading_ids == ("preface", "one")


@pytest.mark.parametrize("count", [1, 2, 3])
def test_headless_preamble_joins_first_chapter(count):
    blocks = [Paragraph(html="Preface text")]
    for n in range(count):
        blocks += [heading(1, f"Part {n}"), Paragraph(html="x")]
    document = document_of(*blocks)

    chapters = segment(document, chapter_level=1)

    assert len(chapters) == count
    assert chapters[0].start == 0
    assert chapters[0].id == "untitled"
    assert chapters[0].heading_ids == ("untitled", "part-0")
    assert [c.id for c in chapters[1:]] == [f"part-{n}" for n in range(1, count)]


def test_headless_document_is_one_chapter():
    chapters = segment(document_of(Paragraph(html="just text")), chapter_level=1)

    assert len(chapters) == 1
    assert chapters[0].id == "untitled"


def test_chapters_cover_document_in_order():
    document = document_of(
        heading(1, "A"), heading(2, "B"), Paragraph(html="b"), heading(2, "C"), heading(1, "D"),
    )

    chapters = segment(document, chapter_level=2)

    assert [c.id for c in chapters] == ["a", "b", "c", "d"]
    assert [c.file_name for c in chapters] == ["a.xhtml", "b.xhtml", "c.xhtml", "d.xhtml"]
    assert chapters[0].start == 0
    assert all(a.end == b.start for a, b in zip(chapters, chapters[1:]))
    assert chapters[-1].end == len(document.blocks)


def test_chapter_ids_start_with_a_letter():
    document = document_of(heading(1, "1984"), heading(1, "ch-1984"))

    chapters = segment(document, chapter_level=1)

    assert chapters[0].id == "ch-1984-1"
    assert chapters[1].id == "ch-1984"
    assert chapters[0].heading_ids == ("1984",)


def test_chapter_for():
    document = document_of(heading(1, "A"), Paragraph(html="a"), heading(1, "B"))
    chapters = segment(document)

    assert chapter_for(chapters, 1).id == "a"
    assert chapter_for(chapters, 2).id == "b"
    with pytest.raises(IndexError):
        chapter_for(chapters, 3)
