"""
Shared fixtures for the mdepub test suite.

Provides a fully specified BookConfig (so metadata defaults do not add
warnings), helpers to write Markdown books under tmp_path, and XML
parsing helpers for generated package files.
"""

import xml.etree.ElementTree as ET

import pytest

from mdepub.config import BookConfig
from mdepub.model import Source


XHTML_NS = "{http://www.w3.org/1999/xhtml}"
OPF_NS = "{http://www.idpf.org/2007/opf}"
EPUB_NS = "{http://www.idpf.org/2007/ops}"


BOOK_SETTINGS = {
    "title": "Test Book",
    "creator": "Test Author",
    "language": "en",
    "book_id": "urn:uuid:12345678-1234-5678-1234-567812345678",
    "modified": "2024-01-01T00:00:00Z",
}


@pytest.fixture
def config():
    """Config with every metadata field set."""
    return BookConfig(dict(BOOK_SETTINGS))


@pytest.fixture
def write_md(tmp_path):
    """Write a file under tmp_path and return its path."""
    def write(name, text):
        path = tmp_path / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
        return path
    return write


def sources(*texts):
    """In-memory sources, one per text."""
    return [Source(None, text) for text in texts]


def parse_xml(text):
    """Parse generated XML, failing the test if it is not well formed."""
    return ET.fromstring(text.encode("utf-8"))


def nav_entries(nav_xhtml):
    """
    Nested (title, href, children) tuples of the toc nav.
    """
    root = parse_xml(nav_xhtml)
    toc = None
    for nav in root.iter(f"{XHTML_NS}nav"):
        if nav.get(f"{EPUB_NS}type") == "toc":
            toc = nav
    assert toc is not None, "nav document has no toc nav"

    def walk(ol):
        entries = []
        for li in ol.findall(f"{XHTML_NS}li"):
            a = li.find(f"{XHTML_NS}a")
            child = li.find(f"{XHTML_NS}ol")
            entries.append((a.text, a.get("href"), walk(child) if child is not None else []))
        return entries

    return walk(toc.find(f"{XHTML_NS}ol"))
