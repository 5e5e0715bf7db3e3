#!/usr/bin/env python3
"""
Command-line entry point for mdepub.

Converts a Markdown file, or a directory of Markdown files, into an
EPUB 3 package.

Usage:
    python build.py notes.md -t "My Notes" -c "A. Writer"
    python build.py manuscript/ --toc-level 2 --chapter-level 1
    python build.py manuscript/ --vertical -l ja --save
    python build.py manuscript/ --no-zip          Package directory only
    python build.py validate output/manuscript.epub

Requires: Markdown, PyYAML
Optional: java + epubcheck (validation)
"""

import os
import sys
import argparse
import traceback

# Ensure mdepub is importable from the scripts/ directory
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from mdepub.config import BookConfig
from mdepub.errors import ConfigError
from mdepub.resolve import find_config
from mdepub.builder import EpubBuilder
from mdepub.writer import zip_archiver
from mdepub.epubcheck import validate_epub


# ── Build command ──────────────────────────────────────────────────────


def load_config(args, input_path):
    """book.yaml (explicit or next to the input) plus CLI overrides."""
    overrides = {
        "title": args.title,
        "creator": args.creator,
        "language": args.language,
        "book_id": args.book_id,
        "prefix": args.prefix,
        "style": os.path.abspath(args.style) if args.style else None,
        "cover": os.path.abspath(args.cover) if args.cover else None,
        "toc_level": args.toc_level,
        "chapter_level": args.chapter_level,
        "toc_title": args.toc_title,
        # Flags only override when given
        "vertical": True if args.vertical else None,
        "save": True if args.save else None,
        "landmarks": False if args.no_landmarks else None,
        "ncx": False if args.no_ncx else None,
        "hardbreaks": True if args.hardbreaks else None,
    }
    yaml_path = args.config or find_config(input_path)
    return BookConfig.load(yaml_path, overrides=overrides)


def cmd_build(args):
    """Build one EPUB per input."""
    project_root = os.getcwd()
    output_dir = args.output_dir or os.path.join(project_root, "output")

    results = {}
    for input_path in args.inputs:
        try:
            config = load_config(args, input_path)
        except ConfigError as e:
            print(f"Error: {e}")
            results[input_path] = False
            continue

        if args.verbose:
            config.summary()

        builder = EpubBuilder(
            config=config,
            input_path=input_path,
            output_dir=output_dir,
            verbose=args.verbose,
            archiver=None if args.no_zip else zip_archiver,
            validate=args.validate,
        )
        results[input_path] = builder.build()

    # Summary
    print(f"\n{'─' * 60}")
    failed = [path for path, ok in results.items() if not ok]
    if failed:
        print(f"  Done with errors: {', '.join(failed)} failed")
        sys.exit(1)
    else:
        print(f"  Done. {len(results)} book(s) built successfully.")


# ── Validate command ───────────────────────────────────────────────────


def cmd_validate(args):
    """Run epubcheck on an existing epub."""
    if not os.path.exists(args.epub):
        print(f"  Error: {args.epub} not found. Build it first.")
        sys.exit(1)

    print(f"\n{'─' * 60}")
    print(f"  Validating: {args.epub}")
    print(f"{'─' * 60}")

    valid = validate_epub(args.epub, verbose=True)
    sys.exit(0 if valid else 1)


# ── Argument Parser ────────────────────────────────────────────────────


def build_parser():
    parser = argparse.ArgumentParser(
        description="Markdown to EPUB 3 converter",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
examples:
  %(prog)s notes.md -t "Notes"           Single file
  %(prog)s manuscript/                   Directory, files in name order
  %(prog)s manuscript/ --toc-level 2     Shallower table of contents
  %(prog)s manuscript/ --vertical -l ja  Vertical, right-to-left layout
  %(prog)s validate output/book.epub     Run epubcheck on an existing epub
        """,
    )

    sub = parser.add_subparsers(dest="command")

    # ── build (default when no subcommand) ─────────────────
    build_p = sub.add_parser("build", help="Convert Markdown to EPUB (default)")
    build_p.add_argument("inputs", nargs="+", help="Markdown file(s) or directories")
    _add_metadata_args(build_p)
    _add_build_args(build_p)

    # ── validate ───────────────────────────────────────────
    val_p = sub.add_parser("validate", help="Run epubcheck on an existing epub")
    val_p.add_argument("epub", help="Path to .epub file")

    return parser


def _add_metadata_args(parser):
    meta = parser.add_argument_group("metadata")
    meta.add_argument("--title", "-t", help="Book title")
    meta.add_argument("--creator", "-c", help="Author, editor, translator...")
    meta.add_argument("--language", "-l", help="Language tag (default: en)")
    meta.add_argument("--book-id", help="Unique identifier (default: generated UUID)")


def _add_build_args(parser):
    """Add layout flags and build options to a parser."""
    layout = parser.add_argument_group("layout")
    layout.add_argument("--style", help="CSS file copied into the package")
    layout.add_argument("--cover", help="Cover image")
    layout.add_argument("--vertical", "-V", action="store_true",
                        help="Vertical writing, right-to-left page progression")
    layout.add_argument("--toc-level", type=int, help="Deepest heading level in the TOC (1-5, default 3)")
    layout.add_argument("--chapter-level", type=int,
                        help="Headings at or above this level start a chapter (default 1)")
    layout.add_argument("--toc-title", help="Heading of the table of contents")
    layout.add_argument("--no-landmarks", action="store_true", help="Omit the landmarks nav")
    layout.add_argument("--no-ncx", action="store_true", help="Omit toc.ncx")
    layout.add_argument("--hardbreaks", action="store_true",
                        help="Treat every newline in a paragraph as a line break")

    opts = parser.add_argument_group("options")
    opts.add_argument("--config", help="book.yaml (default: next to the input)")
    opts.add_argument("--prefix", help="Output file name (default: input name)")
    opts.add_argument("--output-dir", help="Override output directory")
    opts.add_argument("--save", action="store_true",
                      help="Keep the package directory after archiving")
    opts.add_argument("--no-zip", action="store_true",
                      help="Write the package directory only")
    opts.add_argument("--validate", action="store_true", help="Run epubcheck after the build")
    opts.add_argument("--verbose", "-v", action="store_true")


# ── Main ───────────────────────────────────────────────────────────────


def main(argv=None):
    parser = build_parser()
    argv = sys.argv[1:] if argv is None else argv

    # Allow bare "build.py book.md" without the "build" subcommand:
    # if the first positional arg isn't a known subcommand, prepend "build".
    known_commands = {"build", "validate"}
    if argv and argv[0] not in known_commands and not argv[0].startswith("-"):
        args = parser.parse_args(["build"] + argv)
    else:
        args = parser.parse_args(argv)

    dispatch = {
        "build": cmd_build,
        "validate": cmd_validate,
    }

    handler = dispatch.get(args.command)
    if handler:
        handler(args)
    else:
        parser.print_help()


if __name__ == "__main__":
    try:
        main()
    except KeyboardInterrupt:
        print("\nCancelled.")
        sys.exit(1)
    except Exception as e:
        log_path = "build_error.log"
        with open(log_path, "w") as f:
            traceback.print_exc(file=f)
        print(f"\nUnexpected error: {e}")
        print(f"Full traceback written to {log_path}")
        sys.exit(1)
