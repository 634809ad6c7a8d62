"""Tests for summary and tag extraction."""

from timepon.extract import generate_tags, summarize


class TestSummarize:
    def test_markdown_heading(self):
        assert summarize("# Timepon MCP Server\n\nAI-assisted tool", "README.md") == "Timepon MCP Server"

    def test_markdown_heading_after_text(self):
        content = "intro line\n\n## Second Level\n"
        assert summarize(content, "doc.md") == "Second Level"

    def test_markdown_without_heading(self):
        assert summarize("\n\nJust prose here\n", "doc.md") == "Just prose here"

    def test_markdown_blank(self):
        assert summarize("   \n\n", "doc.md") == "Empty markdown file"

    def test_source_comment(self):
        content = "// API endpoint definitions\nexport class ApiService {}"
        assert summarize(content, "src/api.ts") == "API endpoint definitions"

    def test_python_hash_comment(self):
        assert summarize("import os\n    # Loads config\n", "a.py") == "Loads config"

    def test_source_without_comment(self):
        assert summarize("package main\n", "main.go") == "go source file"

    def test_generic_first_line(self):
        assert summarize('{\n  "name": "timepon"\n}', "config.json") == "{"

    def test_generic_blank_falls_back_to_filename(self):
        assert summarize("  \n", "dir/notes.json") == "notes.json"

    def test_no_content(self):
        assert summarize("", "photo.png") == ".png file"
        assert summarize("", "Makefile") == "file"

    def test_truncated_to_80(self):
        summary = summarize("x" * 200, "long.txt")
        assert len(summary) == 80


class TestGenerateTags:
    def test_markdown_docs(self):
        assert generate_tags("# Timepon", "README.md") == ["md", "docs"]

    def test_code(self):
        assert generate_tags("// API", "src/api.ts") == ["ts", "code"]

    def test_config(self):
        assert generate_tags("{}", "notes.json") == ["json", "config"]

    def test_markdown_keywords_capped_at_three(self):
        content = "# System Architecture\n\nTODO: document the API and database schema"
        assert generate_tags(content, "docs/architecture.md") == ["md", "docs", "tasks"]

    def test_keyword_match_is_case_insensitive(self):
        assert generate_tags("DESIGN notes", "notes.md") == ["md", "docs", "architecture"]

    def test_keywords_only_for_markdown(self):
        assert generate_tags("todo api", "notes.txt") == ["txt", "docs"]

    def test_no_extension(self):
        assert generate_tags("anything", "Makefile") == []

    def test_unknown_extension(self):
        assert generate_tags("", "blob.bin") == ["bin"]

    def test_at_most_three(self):
        assert len(generate_tags("task api schema design", "x.md")) <= 3
