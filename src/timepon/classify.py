"""Binary/text classification of workspace files.

Only text content is summarized. Decision order, first decisive check wins:
  1. known text extension
  2. known binary extension
  3. magic bytes of common binary formats
  4. share of non-printable bytes in the first 512 bytes
Files above MAX_FILE_SIZE are never read.
"""

import asyncio
import enum
import logging
import os
from typing import Optional

logger = logging.getLogger(__name__)

MAX_FILE_SIZE = 1024 * 1024
BINARY_DETECTION_SAMPLE = 512
BINARY_THRESHOLD = 0.3

TEXT_EXTENSIONS = frozenset({
    '.txt', '.md', '.json', '.js', '.ts', '.py', '.java', '.cs', '.go', '.rb',
    '.php', '.html', '.css', '.xml', '.yaml', '.yml', '.toml', '.ini', '.sh',
    '.bat', '.ps1',
})

BINARY_EXTENSIONS = frozenset({
    '.exe', '.dll', '.so', '.dylib', '.bin', '.dat', '.zip', '.tar', '.gz',
    '.7z', '.rar', '.jpg', '.jpeg', '.png', '.gif', '.bmp', '.pdf', '.doc',
    '.docx', '.xls',
})

# (offset-0 prefix, format)
MAGIC_SIGNATURES = (
    (b'PK', 'zip'),
    (b'\x89PNG', 'png'),
    (b'GIF', 'gif'),
    (b'\xff\xd8', 'jpeg'),
    (b'%PDF', 'pdf'),
)

_ALLOWED_CONTROL = frozenset({9, 10, 13})


class Classification(enum.Enum):
    TEXT = "text"
    BINARY = "binary"


def _sniff_magic(sample: bytes) -> Optional[str]:
    if len(sample) < 4:
        return None
    for signature, fmt in MAGIC_SIGNATURES:
        if sample.startswith(signature):
            return fmt
    return None


def classify(sample: bytes, path: str) -> Classification:
    """Decide whether content is text or opaque binary.

    Args:
        sample: Leading bytes of the file (the whole file is fine)
        path: File path, used for its extension

    Returns:
        Classification.TEXT or Classification.BINARY
    """
    ext = os.path.splitext(path)[1].lower()
    if ext in TEXT_EXTENSIONS:
        return Classification.TEXT
    if ext in BINARY_EXTENSIONS:
        return Classification.BINARY

    if _sniff_magic(sample) is not None:
        return Classification.BINARY

    window = sample[:BINARY_DETECTION_SAMPLE]
    if not window:
        return Classification.TEXT

    non_printable = sum(1 for b in window if b < 32 and b not in _ALLOWED_CONTROL)
    if non_printable / len(window) > BINARY_THRESHOLD:
        return Classification.BINARY
    return Classification.TEXT


def read_content(path: str, stat: Optional[os.stat_result] = None) -> str:
    """Read a file's text content for summarization.

    Oversized and binary files yield an empty string; the size check happens
    before any bytes are read.

    Raises:
        OSError: if the file cannot be stat'ed or read
    """
    if stat is None:
        stat = os.stat(path)

    if stat.st_size > MAX_FILE_SIZE:
        logger.debug("Skipping content of %s: %d bytes exceeds limit", path, stat.st_size)
        return ""

    with open(path, "rb") as f:
        data = f.read()

    if classify(data, path) is Classification.BINARY:
        logger.debug("Skipping content of %s: binary", path)
        return ""

    return data.decode("utf-8", errors="replace")


async def read_content_async(path: str, stat: Optional[os.stat_result] = None) -> str:
    """read_content() on a worker thread."""
    return await asyncio.to_thread(read_content, path, stat)
