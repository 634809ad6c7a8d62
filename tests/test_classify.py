"""Tests for binary/text classification and content reading."""

import os

import pytest

from timepon.classify import (
    MAX_FILE_SIZE,
    Classification,
    classify,
    read_content,
    read_content_async,
)


class TestClassify:
    def test_empty_sample_is_text(self):
        assert classify(b"", "blob") is Classification.TEXT

    def test_png_magic_is_binary_without_extension(self):
        assert classify(b"\x89\x50\x4e\x47", "blob") is Classification.BINARY

    @pytest.mark.parametrize("sample", [
        b"PK\x03\x04rest",
        b"GIF89a..",
        b"\xff\xd8\xff\xe0",
        b"%PDF-1.7",
    ])
    def test_magic_signatures(self, sample):
        assert classify(sample, "unknown.bin2") is Classification.BINARY

    def test_short_sample_skips_magic_check(self):
        assert classify(b"PK", "blob") is Classification.TEXT

    def test_text_extension_wins_over_content(self):
        assert classify(b"\x00\x01\x02\x03" * 64, "notes.md") is Classification.TEXT
        assert classify(b"\x89PNG", "fake.md") is Classification.TEXT

    def test_binary_extension_wins_over_content(self):
        assert classify(b"plain text", "photo.jpg") is Classification.BINARY

    def test_extension_check_is_case_insensitive(self):
        assert classify(b"\x00" * 10, "README.MD") is Classification.TEXT

    def test_statistical_fallback(self):
        mostly_control = b"\x01" * 40 + b"a" * 60
        assert classify(mostly_control, "blob") is Classification.BINARY
        some_control = b"\x01" * 20 + b"a" * 80
        assert classify(some_control, "blob") is Classification.TEXT

    def test_tabs_and_newlines_are_printable(self):
        assert classify(b"\t\n\r" * 100, "blob") is Classification.TEXT

    def test_only_first_512_bytes_sampled(self):
        sample = b"a" * 512 + b"\x00" * 4096
        assert classify(sample, "blob") is Classification.TEXT


class TestReadContent:
    def test_reads_text(self, tmp_path):
        path = tmp_path / "notes.txt"
        path.write_text("hello\nworld\n")
        assert read_content(str(path)) == "hello\nworld\n"

    def test_binary_yields_empty(self, tmp_path):
        path = tmp_path / "image"
        path.write_bytes(b"\x89PNG\r\n\x1a\n" + b"\x00" * 100)
        assert read_content(str(path)) == ""

    def test_oversized_file_not_read(self, tmp_path, monkeypatch):
        path = tmp_path / "big.txt"
        path.write_bytes(b"a" * (MAX_FILE_SIZE + 1))

        def fail_open(*args, **kwargs):
            raise AssertionError("oversized file should not be opened")

        monkeypatch.setattr("builtins.open", fail_open)
        assert read_content(str(path), os.stat(str(path))) == ""

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(OSError):
            read_content(str(tmp_path / "gone.txt"))

    def test_invalid_utf8_replaced(self, tmp_path):
        path = tmp_path / "latin.txt"
        path.write_bytes(b"caf\xe9")
        assert read_content(str(path)) == "caf\ufffd"

    async def test_async_variant(self, tmp_path):
        path = tmp_path / "a.py"
        path.write_text("# hi\n")
        assert await read_content_async(str(path)) == "# hi\n"
