"""
epubcheck discovery and output parsing. epubcheck itself is never run.
"""

import subprocess

from mdepub import epubcheck


SAMPLE_OUTPUT = """\
Validating using EPUB version 3.3 rules.
ERROR(RSC-005): book.epub/OEBPS/one.xhtml(3,1): Error while parsing file
Messages: 0 fatals / 1 error / 2 warnings / 0 infos
"""


def test_parse_summary():
    assert epubcheck.parse_summary(SAMPLE_OUTPUT) == (0, 1, 2)
    assert epubcheck.parse_summary("no summary here") is None


def test_find_prefers_env_jar(monkeypatch, tmp_path):
    jar = tmp_path / "epubcheck.jar"
    jar.write_bytes(b"")
    monkeypatch.setenv("EPUBCHECK_JAR", str(jar))

    assert epubcheck.find_epubcheck() == ["java", "-jar", str(jar)]


def test_find_on_path(monkeypatch):
    monkeypatch.delenv("EPUBCHECK_JAR", raising=False)
    monkeypatch.setattr(epubcheck.shutil, "which", lambda name: "/usr/bin/epubcheck")

    assert epubcheck.find_epubcheck() == ["epubcheck"]


def test_unavailable_returns_none(monkeypatch):
    monkeypatch.setattr(epubcheck, "find_epubcheck", lambda: None)

    assert epubcheck.validate_epub("book.epub") is None


def test_validate_reports_result(monkeypatch, capsys):
    monkeypatch.setattr(epubcheck, "find_epubcheck", lambda: ["epubcheck"])

    def fake_run(command, capture_output, text):
        assert command == ["epubcheck", "book.epub"]
        return subprocess.CompletedProcess(command, 1, stdout=SAMPLE_OUTPUT, stderr="")

    monkeypatch.setattr(epubcheck.subprocess, "run", fake_run)

    assert epubcheck.validate_epub("book.epub") is False
    out = capsys.readouterr().out
    assert "0 fatal, 1 error(s), 2 warning(s)" in out
    assert "RSC-005" in out
