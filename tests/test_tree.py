"""Tests for the nested YAML document."""

import logging
import os
from datetime import datetime, timedelta, timezone

import pytest
import yaml

from timepon.models import DirectoryNode, FileNode, FileRecord
from timepon.tree import (
    build_tree,
    file_icon,
    parse_created,
    records_from_files,
    relative_age,
    render_document,
)

NOW = datetime(2026, 10, 18, 12, 0, 0, tzinfo=timezone.utc)
ROOT = os.path.abspath(os.path.join(os.sep, "work", "project"))


def _record(rel, hours_ago=0, summary="summary", tags=("txt",), **kwargs):
    return FileRecord(
        path=os.path.join(ROOT, *rel.split("/")),
        created=NOW - timedelta(hours=hours_ago),
        summary=summary,
        tags=list(tags),
        **kwargs,
    )


@pytest.fixture
def records():
    return [
        _record("README.md", 1, "Timepon", ["md", "docs"]),
        _record("src/api.ts", 5, "API: endpoint, definitions #1", ["ts", "code"]),
        _record("src/util/strings.py", 50, "helpers", ["py", "code"]),
        _record("src/app.py", 2, "entry point", ["py", "code"]),
        _record("assets/logo.bin", 200, ".bin file", []),
        _record("notes/true", 3, "yes", [], stale=True, stale_reason="[Errno 2] No such file"),
    ]


def _section(document):
    return yaml.safe_load(document)["files"]


class TestBuildTree:
    def test_nesting(self, records):
        root = build_tree(records, ROOT)
        assert isinstance(root, DirectoryNode)
        src = root.children["src"]
        assert src.kind == "directory"
        assert isinstance(src.children["api.ts"], FileNode)
        assert src.children["util"].children["strings.py"].record.summary == "helpers"

    def test_outside_workspace_skipped(self):
        record = FileRecord(path=os.path.join(os.sep, "elsewhere", "x.txt"), created=NOW, summary="x")
        assert build_tree([record], ROOT).children == {}

    @pytest.mark.parametrize("reverse", [False, True])
    def test_file_and_directory_on_same_path(self, caplog, reverse):
        tombstone = _record("notes", 5, "old", [], stale=True, stale_reason="gone")
        child = _record("notes/a.md", 1, "A", ["md"])
        records = [child, tombstone] if reverse else [tombstone, child]

        with caplog.at_level(logging.WARNING, logger="timepon.tree"):
            root = build_tree(records, ROOT)

        notes = root.children["notes"]
        assert notes.kind == "directory"
        assert notes.children["a.md"].record is child
        assert tombstone.path in caplog.text

    def test_collision_document_reloads_directory_side(self, caplog):
        records = [
            _record("notes", 5, "old", [], stale=True, stale_reason="gone"),
            _record("notes/a.md", 1, "A", ["md"]),
        ]
        with caplog.at_level(logging.WARNING, logger="timepon.tree"):
            loaded = records_from_files(_section(render_document(records, ROOT, now=NOW)), ROOT)
        assert [r.path for r in loaded] == [records[1].path]
        assert "Leaving" in caplog.text


class TestRenderDocument:
    def test_is_valid_yaml_with_header_fields(self, records):
        data = yaml.safe_load(render_document(records, ROOT, now=NOW))
        assert data["workspace"] == ROOT
        assert data["totalFiles"] == 6
        assert "Root" in data["files"]

    def test_header_and_footer(self, records):
        document = render_document(records, ROOT, now=NOW)
        lines = document.splitlines()
        assert lines[0] == "# TIMEPON FILE TRACKING"
        assert lines[1] == f"# {ROOT}"
        assert "# Files Tracked:    6" in lines
        assert "# Ctrl+K Ctrl+0 = fold all | Ctrl+K Ctrl+J = unfold all" in lines
        assert any(line.startswith("# Last Updated:     ") for line in lines)
        assert lines[-2] == "# End of Timepon tracking data"

    def test_directories_before_files_and_ordering(self, records):
        document = render_document(records, ROOT, now=NOW)
        root_keys = list(_section(document)["Root"].keys())
        assert root_keys == ["assets", "notes", "src", "README.md"]
        src_keys = list(_section(document)["Root"]["src"].keys())
        assert src_keys == ["util", "app.py", "api.ts"]

    def test_leaf_annotations(self, records):
        document = render_document(records, ROOT, now=NOW)
        assert "    # === 🏠 Root" not in document
        assert "  # === 🏠 Root" in document
        assert "    # === 📁 src" in document
        assert "    # 📄 README.md  >> 1h ago <<" in document
        assert "      # 🐍 app.py  >> 2h ago <<" in document
        assert "(1h ago)" in document
        readme = _section(document)["Root"]["README.md"]
        assert readme["tags"] == ["md", "docs"]
        assert readme["summary"] == "Timepon"

    def test_empty_tags_render_as_brackets(self, records):
        document = render_document(records, ROOT, now=NOW)
        assert "tags: []" in document
        assert _section(document)["Root"]["assets"]["logo.bin"]["tags"] == []

    def test_empty_index(self):
        document = render_document([], ROOT, now=NOW)
        data = yaml.safe_load(document)
        assert data["totalFiles"] == 0
        assert records_from_files(data["files"], ROOT) == []


class TestRoundTrip:
    def test_paths_summaries_tags_and_seconds(self, records):
        document = render_document(records, ROOT, now=NOW)
        loaded = records_from_files(_section(document), ROOT)

        def key(r):
            return (r.path, r.summary, tuple(r.tags), r.created, r.stale, r.stale_reason)

        assert sorted(map(key, loaded)) == sorted(map(key, records))

    def test_awkward_names_and_summaries(self):
        awkward = [
            _record("dir: with colon/#hash.txt", 1, "- starts with dash", ["txt"]),
            _record("yes", 2, "null", []),
            _record("quotes/'single' \"double\".md", 3, "multi\nline", ["md"]),
            _record("unicode/café ☕.txt", 4, "naïve — summary", ["txt"]),
        ]
        loaded = records_from_files(_section(render_document(awkward, ROOT, now=NOW)), ROOT)
        assert {(r.path, r.summary) for r in loaded} == {(r.path, r.summary) for r in awkward}


class TestHelpers:
    @pytest.mark.parametrize("delta,expected", [
        (timedelta(seconds=30), "just now"),
        (timedelta(minutes=5), "5m ago"),
        (timedelta(hours=3), "3h ago"),
        (timedelta(days=2), "2d ago"),
        (timedelta(days=15), "2w ago"),
    ])
    def test_relative_age(self, delta, expected):
        assert relative_age(NOW - delta, NOW) == expected

    def test_file_icon(self):
        assert file_icon("a.py") == "🐍"
        assert file_icon("A.JSON") == "📋"
        assert file_icon("unknown.xyz") == "📄"

    def test_parse_created_formats(self):
        assert parse_created("2026-10-18 14:00:00 +0200 >>(2h ago)<<") == NOW.replace(hour=12)
        assert parse_created("2026-10-18T12:00:00+00:00") == NOW
        assert parse_created(datetime(2026, 10, 18, 12, 0, 0)) == NOW

    def test_parse_created_rejects_garbage(self):
        with pytest.raises(ValueError):
            parse_created("yesterday")
