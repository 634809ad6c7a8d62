"""Summary and tag derivation from file content and extension."""

import os
import re

from .models import MAX_SUMMARY_LENGTH, MAX_TAGS

MARKDOWN_EXTENSIONS = ('.md', '.markdown')
SOURCE_EXTENSIONS = ('.js', '.ts', '.py', '.java', '.cs', '.go')

CODE_EXTENSIONS = frozenset({'js', 'ts', 'py', 'java', 'cs', 'go', 'rb', 'php', 'cpp', 'c', 'rs'})
DOC_EXTENSIONS = frozenset({'md', 'markdown', 'txt', 'rst', 'adoc'})
CONFIG_EXTENSIONS = frozenset({'json', 'yaml', 'yml', 'toml', 'ini', 'env'})

# tag -> keywords that trigger it in Markdown content
MARKDOWN_KEYWORD_TAGS = (
    ('tasks', ('todo', 'task')),
    ('api', ('api', 'endpoint')),
    ('data', ('schema', 'database')),
    ('architecture', ('architecture', 'design')),
)

_HEADING_MARKER = re.compile(r'^#+\s*')
_COMMENT_MARKER = re.compile(r'^(?://+|#+)\s*')


def _extension(path: str) -> str:
    return os.path.splitext(path)[1].lower()


def _non_blank_lines(content: str) -> list[str]:
    return [line for line in content.splitlines() if line.strip()]


def summarize(content: str, path: str) -> str:
    """Derive a one-line summary (at most 80 characters).

    Args:
        content: Text content, empty when the file was skipped
        path: File path, used for its extension and name

    Returns:
        Summary string
    """
    ext = _extension(path)

    if not content:
        return f"{ext} file".strip()

    lines = _non_blank_lines(content)

    if ext in MARKDOWN_EXTENSIONS:
        for line in lines:
            if line.startswith('#'):
                return _HEADING_MARKER.sub('', line).strip()[:MAX_SUMMARY_LENGTH]
        if lines:
            return lines[0].strip()[:MAX_SUMMARY_LENGTH]
        return "Empty markdown file"

    if ext in SOURCE_EXTENSIONS:
        for line in lines:
            stripped = line.strip()
            if stripped.startswith('//') or stripped.startswith('#'):
                return _COMMENT_MARKER.sub('', stripped)[:MAX_SUMMARY_LENGTH]
        return f"{ext[1:]} source file"

    if lines:
        return lines[0].strip()[:MAX_SUMMARY_LENGTH]
    return os.path.basename(path)


def generate_tags(content: str, path: str) -> list[str]:
    """Derive up to three tags: extension, category, then Markdown keywords."""
    tags = []
    ext = _extension(path)[1:]

    if ext:
        tags.append(ext)

    if ext in CODE_EXTENSIONS:
        tags.append('code')
    elif ext in DOC_EXTENSIONS:
        tags.append('docs')
    elif ext in CONFIG_EXTENSIONS:
        tags.append('config')

    if f".{ext}" in MARKDOWN_EXTENSIONS and content:
        lower = content.lower()
        for tag, keywords in MARKDOWN_KEYWORD_TAGS:
            if any(keyword in lower for keyword in keywords):
                tags.append(tag)

    return tags[:MAX_TAGS]
