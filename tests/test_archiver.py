"""
Tests for the ZIP archiver.
"""

import zipfile

import pytest

from sitemirror.archiver import ZipArchiver
from sitemirror.errors import ArchiveError


def _populate(root):
    (root / "css").mkdir(parents=True)
    (root / "docs" / "guide").mkdir(parents=True)
    (root / "index.html").write_text("<h1>home</h1>", encoding="utf-8")
    (root / "about.html").write_text("<h1>about</h1>", encoding="utf-8")
    (root / "css" / "site.css").write_text("body{}", encoding="utf-8")
    (root / "docs" / "guide" / "index.html").write_bytes(b"\x00\x01binary")


class TestZipArchiver:
    """Entries are relative to the source root and byte-identical."""

    def test_round_trip(self, tmp_path):
        source = tmp_path / "job"
        _populate(source)
        archive = tmp_path / "job.zip"

        written = ZipArchiver().package(source, archive)

        assert written == str(archive)
        with zipfile.ZipFile(archive) as zf:
            names = sorted(zf.namelist())
            assert names == [
                "about.html",
                "css/site.css",
                "docs/guide/index.html",
                "index.html",
            ]
            assert zf.read("docs/guide/index.html") == b"\x00\x01binary"
            assert all(info.compress_type == zipfile.ZIP_DEFLATED for info in zf.infolist())

    def test_no_partial_file_left(self, tmp_path):
        source = tmp_path / "job"
        _populate(source)
        ZipArchiver().package(source, tmp_path / "job.zip")
        assert not (tmp_path / "job.zip.part").exists()

    def test_empty_directory(self, tmp_path):
        source = tmp_path / "empty"
        source.mkdir()
        archive = tmp_path / "empty.zip"
        ZipArchiver().package(source, archive)
        with zipfile.ZipFile(archive) as zf:
            assert zf.namelist() == []

    def test_missing_source(self, tmp_path):
        with pytest.raises(ArchiveError):
            ZipArchiver().package(tmp_path / "nope", tmp_path / "nope.zip")

    def test_archive_inside_source_rejected(self, tmp_path):
        source = tmp_path / "job"
        _populate(source)
        with pytest.raises(ArchiveError):
            ZipArchiver().package(source, source / "self.zip")
