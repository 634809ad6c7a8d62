"""Gitignore-style ignore patterns for the workspace watcher.

Patterns come from two files read once at watcher start, ``.tponignore``
first and ``.gitignore`` second. Three built-in rules covering the metadata
document, its corruption backups and its atomic-write temporaries are always
appended last, so user patterns can never make Timepon track its own output.

Each glob line compiles to one regular expression:
  - a trailing ``/`` makes the pattern directory-only (a separator or the end
    of the path must follow)
  - ``*`` matches any run of characters, ``?`` any single character
  - a leading ``/`` anchors the pattern at the workspace root, otherwise it may
    match after any path separator
A path is ignored when any rule matches.
"""

import logging
import os
import re
from typing import Optional

import pathspec
from pathspec.pattern import RegexPattern

from .config import DOCUMENT_NAME

logger = logging.getLogger(__name__)

PROJECT_IGNORE_FILE = ".tponignore"
FALLBACK_IGNORE_FILE = ".gitignore"

_SEPARATOR = r"[/\\]"

DEFAULT_IGNORE_CONTENT = """# Timepon Ignore Patterns
# Lines starting with # are comments
# Patterns follow .gitignore syntax

# Dependencies
node_modules/
bower_components/
vendor/
packages/
.venv/
venv/
__pycache__/

# Build outputs
dist/
build/
out/
target/
*.egg-info/
*.min.js
*.min.css

# IDE & Editor
.vscode/
.idea/
.cursor/
*.swp
*.swo
*~
.project
.classpath
.settings/

# OS files
.DS_Store
Thumbs.db
Desktop.ini
._*

# Version control
.git/
.svn/
.hg/

# Logs
*.log
logs/
npm-debug.log*
yarn-debug.log*
yarn-error.log*

# Temp files
tmp/
temp/
*.tmp
*.temp

# Test coverage
coverage/
.nyc_output/
htmlcov/
.pytest_cache/
*.cover

# Cache
.cache/
.parcel-cache/
.next/
.nuxt/
.vuepress/dist

# Environment & secrets
.env
.env.local
.env.*.local
*.key
*.pem
credentials.json

# Timepon internal
_timepon.yaml
_timepon.yaml.backup.*
_timepon.yaml.tmp*

# Large binary/media files (optional - uncomment if needed)
# *.mp4
# *.mov
# *.avi
# *.pdf
# *.zip
# *.tar.gz
"""


def glob_to_regex(pattern: str) -> str:
    """Translate one glob line into a regular expression string."""
    directory_only = pattern.endswith("/")
    if directory_only:
        pattern = pattern[:-1]

    anchored = pattern.startswith("/")
    if anchored:
        pattern = pattern[1:]

    body = "".join(
        ".*" if ch == "*" else "." if ch == "?" else re.escape(ch)
        for ch in pattern
    )

    prefix = "^" if anchored else f"^(?:.*{_SEPARATOR})?"
    suffix = f"(?:{_SEPARATOR}|$)" if directory_only else ""
    return prefix + body + suffix


def compile_pattern(line: str) -> RegexPattern:
    """Compile a glob line into an include rule usable by ``pathspec.PathSpec``.

    Raises:
        ValueError: if the line holds no pattern
    """
    pattern = line.strip()
    if not pattern or pattern in ("/", "//"):
        raise ValueError(f"Empty ignore pattern: {line!r}")
    return RegexPattern(re.compile(glob_to_regex(pattern)), include=True)


def builtin_patterns(document_name: str = DOCUMENT_NAME) -> list[RegexPattern]:
    """Rules protecting the metadata document from self-tracking."""
    return [
        compile_pattern(document_name),
        compile_pattern(f"{document_name}.backup.*"),
        compile_pattern(f"{document_name}.tmp*"),
    ]


def parse_ignore_file(file_path: str) -> list[RegexPattern]:
    """Read an ignore file, skipping blank lines and ``#`` comments.

    A missing or unreadable file yields no patterns.
    """
    try:
        with open(file_path, "r", encoding="utf-8") as f:
            lines = f.read().splitlines()
    except (OSError, UnicodeDecodeError):
        return []

    patterns = []
    for line in lines:
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        if stripped.startswith("!"):
            logger.warning(
                "Negation pattern '%s' in %s is not supported, skipping",
                stripped, os.path.basename(file_path),
            )
            continue
        try:
            patterns.append(compile_pattern(stripped))
        except (ValueError, re.error) as e:
            logger.debug("Skipping ignore pattern %r: %s", stripped, e)
    return patterns


def ensure_ignore_file(workspace_root: str) -> bool:
    """Create the default ``.tponignore`` if the workspace has none.

    Returns:
        True if a file was written, False if one existed or writing failed.
    """
    ignore_path = os.path.join(workspace_root, PROJECT_IGNORE_FILE)
    if os.path.exists(ignore_path):
        return False
    try:
        with open(ignore_path, "w", encoding="utf-8") as f:
            f.write(DEFAULT_IGNORE_CONTENT)
    except OSError as e:
        logger.warning("Failed to create %s file: %s", PROJECT_IGNORE_FILE, e)
        return False
    logger.info("Created default %s file", PROJECT_IGNORE_FILE)
    return True


class IgnoreFilter:
    """Ignore matcher over the workspace's two ignore files plus built-ins."""

    def __init__(self, workspace_root: str, document_name: str = DOCUMENT_NAME):
        """Load and compile the ignore rules for a workspace.

        Args:
            workspace_root: Root directory being watched
            document_name: File name of the metadata document
        """
        self.workspace_root = os.path.abspath(workspace_root)

        patterns = []
        patterns.extend(parse_ignore_file(os.path.join(self.workspace_root, PROJECT_IGNORE_FILE)))
        patterns.extend(parse_ignore_file(os.path.join(self.workspace_root, FALLBACK_IGNORE_FILE)))
        patterns.extend(builtin_patterns(document_name))

        self._spec = pathspec.PathSpec(patterns)
        self.pattern_count = len(patterns)

    def _relative(self, path: str) -> Optional[str]:
        if not os.path.isabs(path):
            return path
        rel = os.path.relpath(path, self.workspace_root)
        if rel == os.curdir or rel.startswith(os.pardir + os.sep) or rel == os.pardir:
            return None
        return rel

    def should_ignore(self, path: str) -> bool:
        """Check whether a path (absolute, or relative to the root) is ignored.

        The workspace root itself and paths outside it are never ignored.
        """
        rel = self._relative(path)
        if rel is None:
            return False
        return self._spec.match_file(rel.replace(os.sep, "/"))
