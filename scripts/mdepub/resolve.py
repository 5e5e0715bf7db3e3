"""
Input resolution: find the Markdown files of a book, its optional
book.yaml, and the name used for output files.
"""

import os
import re
import glob

from mdepub.config import CONFIG_FILENAME
from mdepub.errors import FileIOError


MARKDOWN_EXTENSIONS = (".md", ".markdown")


def natural_sort_key(s):
    """Sort strings with embedded numbers naturally (2.md before 10.md)."""
    return [
        int(text) if text.isdigit() else text.lower()
        for text in re.split(r"(\d+)", s)
    ]


def find_markdown_files(input_path):
    """
    Resolve an input path to an ordered list of Markdown files.

    Accepts a single .md file, or a directory whose Markdown files (not
    recursive) are returned in natural filename order.

    Raises FileIOError if the path does not exist or holds no Markdown.
    """
    if not os.path.exists(input_path):
        raise FileIOError(input_path, "does not exist")

    if os.path.isfile(input_path):
        if not input_path.lower().endswith(MARKDOWN_EXTENSIONS):
            raise FileIOError(input_path, "not a Markdown (.md) file")
        return [os.path.abspath(input_path)]

    files = []
    for ext in MARKDOWN_EXTENSIONS:
        files.extend(glob.glob(os.path.join(input_path, f"*{ext}")))
    files = [os.path.abspath(f) for f in files if os.path.isfile(f)]
    files.sort(key=lambda f: natural_sort_key(os.path.basename(f)))

    if not files:
        raise FileIOError(input_path, "no Markdown files found")

    return files


def find_config(input_path):
    """Return the book.yaml that sits with the input, or None."""
    directory = input_path if os.path.isdir(input_path) else os.path.dirname(input_path)
    candidate = os.path.join(directory or ".", CONFIG_FILENAME)
    if os.path.exists(candidate):
        return os.path.abspath(candidate)
    return None


def input_name(input_path):
    """Human-readable name of the input: file stem or directory name."""
    path = os.path.abspath(input_path).rstrip(os.sep)
    name = os.path.basename(path)
    if os.path.isfile(path):
        name = os.path.splitext(name)[0]
    return name or "book"


def output_prefix(name):
    """File-system friendly output name derived from a title or input name."""
    prefix = re.sub(r"[^\w.-]+", "_", name.strip(), flags=re.UNICODE).strip("._")
    return prefix or "book"
