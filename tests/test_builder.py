"""
End-to-end builds: Markdown on disk to .epub in the output directory.
"""

import importlib.util
import os
import zipfile
from pathlib import Path

import pytest

from mdepub.builder import EpubBuilder, convert
from mdepub.config import BookConfig
from mdepub.errors import AssetError, Diagnostics, ParseError

from conftest import OPF_NS, nav_entries, parse_xml, sources


BUILD_SCRIPT = Path(__file__).resolve().parents[1] / "scripts" / "build.py"


def load_cli():
    spec = importlib.util.spec_from_file_location("mdepub_build_cli", BUILD_SCRIPT)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def read_epub(path):
    with zipfile.ZipFile(path) as zf:
        return {name: zf.read(name) for name in zf.namelist()}


def spine_of(entries):
    opf = parse_xml(entries["OEBPS/package.opf"].decode("utf-8"))
    return [i.get("idref") for i in opf.find(f"{OPF_NS}spine")]


class TestConvert:

    def test_single_file_round_trip(self, config):
        text = "# Title\n\nHello\n\n## Sub\n\nWorld"
        conversion = convert(sources(text), config.replace(toc_level=2))

        assert [c.file_name for c in conversion.chapters] == ["title.xhtml"]
        assert nav_entries(conversion.package.files["OEBPS/nav.xhtml"]) == [
            ("Title", "title.xhtml", [("Sub", "title.xhtml#sub", [])]),
        ]
        assert len(conversion.diagnostics) == 0

    def test_preface_without_heading(self, config):
        conversion = convert(sources("Preface text\n\n# A\n\nx\n\n# B\n\ny\n"), config)

        assert [c.id for c in conversion.chapters] == ["untitled", "b"]
        assert nav_entries(conversion.package.files["OEBPS/nav.xhtml"]) == [
            ("Untitled", "untitled.xhtml", []),
            ("A", "untitled.xhtml#a", []),
            ("B", "b.xhtml", []),
        ]
        first = conversion.package.files["OEBPS/untitled.xhtml"]
        assert "<p>Preface text</p>" in first
        assert '<h1 id="a">A</h1>' in first

    def test_unterminated_fence_is_fatal(self, config):
        with pytest.raises(ParseError):
            convert(sources("# A\n\n```\nnever closed\n"), config)

    def test_missing_cover_is_a_warning(self, config, tmp_path):
        conversion = convert(sources("# A"), config.replace(cover=str(tmp_path / "none.jpg")))

        assert len(conversion.diagnostics.of_type(AssetError)) == 1
        assert "cover-image" not in conversion.package.files["OEBPS/package.opf"]

    def test_diagnostics_are_threaded_through(self, config):
        diagnostics = Diagnostics()
        conversion = convert(sources("text before any heading"), config, diagnostics=diagnostics)

        assert conversion.diagnostics is diagnostics
        assert len(diagnostics) == 1


class TestEpubBuilder:

    def test_builds_single_file(self, config, write_md, tmp_path):
        path = write_md("notes.md", "# Notes\n\nSome text.\n")
        out = tmp_path / "output"

        builder = EpubBuilder(config, str(path), str(out))
        assert builder.build() is True

        assert builder.output_file == str(out / "notes.epub")
        entries = read_epub(out / "notes.epub")
        assert "OEBPS/notes.xhtml" in entries
        assert spine_of(entries) == ["notes"]

    def test_directory_in_natural_order(self, config, write_md, tmp_path):
        write_md("book/10-end.md", "# End\n")
        write_md("book/02-outro.md", "# Outro\n")
        write_md("book/1-intro.md", "# Intro\n")
        write_md("book/notes.txt", "ignored")
        out = tmp_path / "output"

        assert EpubBuilder(config, str(tmp_path / "book"), str(out)).build()

        assert spine_of(read_epub(out / "book.epub")) == ["intro", "outro", "end"]

    def test_repeated_headings_across_files(self, config, write_md, tmp_path):
        write_md("book/a.md", "# Introduction\n\nFirst\n")
        write_md("book/b.md", "# Introduction\n\nSecond\n")
        out = tmp_path / "output"

        builder = EpubBuilder(config, str(tmp_path / "book"), str(out))
        assert builder.build()

        entries = read_epub(out / "book.epub")
        assert spine_of(entries) == ["introduction", "introduction-1"]
        assert b"Second" in entries["OEBPS/introduction-1.xhtml"]

    def test_missing_image_still_builds(self, config, write_md, tmp_path, capsys):
        path = write_md("book.md", "# One\n\n![Lost](lost.png)\n")
        out = tmp_path / "output"

        builder = EpubBuilder(config, str(path), str(out))
        assert builder.build()

        assert len(builder.conversion.diagnostics.of_type(AssetError)) == 1
        assert b"[missing image: Lost]" in read_epub(out / "book.epub")["OEBPS/one.xhtml"]
        assert "1 warning(s)" in capsys.readouterr().out

    def test_failure_writes_nothing(self, config, write_md, tmp_path, capsys):
        path = write_md("broken.md", "# One\n\n~~~\nopen fence\n")
        out = tmp_path / "output"

        builder = EpubBuilder(config, str(path), str(out))
        assert builder.build() is False

        assert not out.exists() or os.listdir(out) == []
        assert "ParseError" in capsys.readouterr().out

    def test_saved_tree_never_replaces_the_manuscript(self, config, write_md, tmp_path, capsys):
        write_md("book/01.md", "# One\n")

        builder = EpubBuilder(config.replace(save=True), str(tmp_path / "book"), str(tmp_path))
        assert builder.build() is False

        assert (tmp_path / "book" / "01.md").read_text(encoding="utf-8") == "# One\n"
        assert not (tmp_path / "book.epub").exists()
        assert "FileIOError" in capsys.readouterr().out

    def test_missing_input(self, config, tmp_path):
        builder = EpubBuilder(config, str(tmp_path / "nope"), str(tmp_path / "output"))

        assert builder.build() is False

    def test_prefix_names_output(self, config, write_md, tmp_path):
        path = write_md("draft.md", "# One\n")
        out = tmp_path / "output"

        builder = EpubBuilder(config.replace(prefix="final"), str(path), str(out))
        assert builder.build()

        assert (out / "final.epub").exists()

    def test_output_is_deterministic(self, write_md, tmp_path):
        write_md("book/1.md", "# One\n\nText with ![img](pic.png)\n\n## Deeper\n")
        write_md("book/2.md", "# Two\n\n- a\n- b\n")
        (tmp_path / "book" / "pic.png").write_bytes(b"\x89PNG")
        config = BookConfig({"title": "Same", "creator": "Same", "language": "en"})

        for out in ("out1", "out2"):
            assert EpubBuilder(config, str(tmp_path / "book"), str(tmp_path / out)).build()

        first = (tmp_path / "out1" / "book.epub").read_bytes()
        second = (tmp_path / "out2" / "book.epub").read_bytes()
        assert first == second


class TestCommandLine:

    @pytest.fixture
    def cli(self):
        return load_cli()

    def test_bare_input_with_overrides(self, cli, write_md, tmp_path):
        path = write_md("notes.md", "# Notes\n")
        out = tmp_path / "output"

        cli.main([str(path), "--output-dir", str(out), "-t", "CLI Title", "-l", "de"])

        opf = read_epub(out / "notes.epub")["OEBPS/package.opf"].decode("utf-8")
        assert "<dc:title>CLI Title</dc:title>" in opf
        assert "<dc:language>de</dc:language>" in opf

    def test_book_yaml_next_to_input(self, cli, write_md, tmp_path):
        write_md("book/book.yaml", "title: From YAML\nvertical: true\n")
        write_md("book/ch.md", "# Ch\n")
        out = tmp_path / "output"

        cli.main(["build", str(tmp_path / "book"), "--output-dir", str(out), "--save"])

        assert (out / "book").is_dir()
        opf = (out / "book" / "OEBPS" / "package.opf").read_text(encoding="utf-8")
        assert "<dc:title>From YAML</dc:title>" in opf
        assert 'page-progression-direction="rtl"' in opf

    def test_no_zip_writes_directory(self, cli, write_md, tmp_path):
        path = write_md("notes.md", "# Notes\n")
        out = tmp_path / "output"

        cli.main([str(path), "--output-dir", str(out), "--no-zip"])

        assert sorted(os.listdir(out)) == ["notes"]

    def test_failed_build_exits_nonzero(self, cli, write_md, tmp_path):
        path = write_md("bad.md", "```\nno end\n")

        with pytest.raises(SystemExit) as excinfo:
            cli.main([str(path), "--output-dir", str(tmp_path / "output")])
        assert excinfo.value.code == 1

    def test_invalid_level_exits_nonzero(self, cli, write_md, tmp_path):
        path = write_md("notes.md", "# Notes\n")

        with pytest.raises(SystemExit):
            cli.main([str(path), "--toc-level", "9", "--output-dir", str(tmp_path / "output")])
