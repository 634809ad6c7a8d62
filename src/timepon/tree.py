"""Nested YAML projection of the flat metadata index.

Paths are split into segments under a single ``Root`` container. At every
level directories come first (alphabetical), then files (newest first). The
header and footer are YAML comments and every scalar goes through PyYAML, so
the document parses back with ``yaml.safe_load``.
"""

import logging
import os
import re
from datetime import datetime, timezone
from typing import Any, Iterable, Optional

import yaml

from .models import DirectoryNode, FileNode, FileRecord, TreeNode

logger = logging.getLogger(__name__)

ROOT_KEY = "Root"
RULE = "=" * 74
INDENT = "  "

DIRECTORY_ICON = "📁"
ROOT_ICON = "🏠"
DEFAULT_FILE_ICON = "📄"
FILE_ICONS = {
    '.md': '📄',
    '.txt': '📝',
    '.js': '⚡',
    '.ts': '🔷',
    '.py': '🐍',
    '.json': '📋',
    '.yaml': '⚙️',
    '.yml': '⚙️',
    '.html': '🌐',
    '.css': '🎨',
    '.sh': '🔧',
    '.ps1': '🔧',
    '.bat': '🔧',
}

CREATED_FORMAT = "%Y-%m-%d %H:%M:%S %z"
_CREATED_PREFIX = re.compile(r"^\s*(\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2} [+-]\d{4})")
_LINE_BREAKS = re.compile(r"[\r\n\x85\u2028\u2029]")


def file_icon(name: str) -> str:
    return FILE_ICONS.get(os.path.splitext(name)[1].lower(), DEFAULT_FILE_ICON)


def relative_age(created: datetime, now: datetime) -> str:
    """Coarse age such as ``just now``, ``5m ago``, ``3h ago``, ``2d ago``, ``1w ago``."""
    seconds = (now - created).total_seconds()
    minutes = int(seconds // 60)
    hours = int(seconds // 3600)
    days = int(seconds // 86400)

    if minutes < 1:
        return "just now"
    if minutes < 60:
        return f"{minutes}m ago"
    if hours < 24:
        return f"{hours}h ago"
    if days < 7:
        return f"{days}d ago"
    return f"{days // 7}w ago"


def format_created(created: datetime, now: datetime) -> str:
    return f"{created.astimezone().strftime(CREATED_FORMAT)} >>({relative_age(created, now)})<<"


def parse_created(value: Any) -> datetime:
    """Recover a creation time from its rendered form.

    Accepts the annotated ``YYYY-MM-DD HH:MM:SS +HHMM >>(...)<<`` string, a
    plain ISO-8601 string, or a datetime produced by the YAML loader.

    Raises:
        ValueError: if the value holds no recognizable timestamp
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        match = _CREATED_PREFIX.match(value)
        if match:
            parsed = datetime.strptime(match.group(1), CREATED_FORMAT)
        else:
            parsed = datetime.fromisoformat(value.strip())
    else:
        raise ValueError(f"Unrecognized created value: {value!r}")

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _scalar(value: Any) -> str:
    # flow context makes PyYAML quote anything ambiguous (":", "#", ",", ...)
    style = None
    if isinstance(value, str) and _LINE_BREAKS.search(value):
        style = '"'
    dumped = yaml.safe_dump(
        [value],
        default_flow_style=True,
        default_style=style,
        allow_unicode=True,
        width=float("inf"),
    ).strip()
    return dumped[1:-1]


def _comment(text: str) -> str:
    return _LINE_BREAKS.sub(" ", text)


def _flow_list(values: Iterable[str]) -> str:
    return yaml.safe_dump(
        list(values), default_flow_style=True, allow_unicode=True, width=float("inf")
    ).strip()


def build_tree(records: Iterable[FileRecord], workspace_root: str) -> DirectoryNode:
    """Fold flat records into a directory tree rooted at ``Root``.

    Where a file and a directory share a path, the directory is kept and the
    file is left out with a warning, whatever the record order.
    """
    root = DirectoryNode(ROOT_KEY)
    for record in records:
        rel = os.path.relpath(record.path, workspace_root)
        parts = rel.split(os.sep)
        if parts[0] == os.pardir:
            logger.warning("Skipping %s: outside workspace %s", record.path, workspace_root)
            continue

        node = root
        for part in parts[:-1]:
            shadowed = node.children.get(part)
            if shadowed is not None and shadowed.kind == "file":
                logger.warning(
                    "Leaving %s out of the document: the same path is a directory",
                    shadowed.record.path,
                )
            node = node.directory(part)

        existing = node.children.get(parts[-1])
        if existing is not None and existing.kind == "directory":
            logger.warning(
                "Leaving %s out of the document: the same path is a directory",
                record.path,
            )
            continue
        node.children[parts[-1]] = FileNode(parts[-1], record)
    return root


def _ordered(node: DirectoryNode) -> list[TreeNode]:
    dirs = sorted(
        (c for c in node.children.values() if c.kind == "directory"), key=lambda c: c.name
    )
    files = sorted(
        (c for c in node.children.values() if c.kind == "file"),
        key=lambda c: c.record.created,
        reverse=True,
    )
    return dirs + files


def _render_level(node: DirectoryNode, level: int, now: datetime, lines: list[str]) -> None:
    indent = INDENT * level
    for index, child in enumerate(_ordered(node)):
        if index > 0:
            lines.append("")
        key = _scalar(child.name)

        if child.kind == "directory":
            lines.append(f"{indent}# === {DIRECTORY_ICON} {_comment(child.name)}")
            lines.append(f"{indent}{key}:")
            _render_level(child, level + 1, now, lines)
            continue

        record = child.record
        age = relative_age(record.created, now)
        lines.append(f"{indent}# {file_icon(child.name)} {_comment(child.name)}  >> {age} <<")
        lines.append(f"{indent}{key}:")
        lines.append(f"{indent}{INDENT}created: {_scalar(format_created(record.created, now))}")
        lines.append(f"{indent}{INDENT}summary: {_scalar(record.summary)}")
        lines.append(f"{indent}{INDENT}tags: {_flow_list(record.tags)}")
        if record.stale:
            lines.append(f"{indent}{INDENT}stale: true")
            lines.append(f"{indent}{INDENT}staleReason: {_scalar(record.stale_reason)}")


def render_document(
    records: Iterable[FileRecord],
    workspace_root: str,
    now: Optional[datetime] = None,
) -> str:
    """Render the full tracking document: header, tree, footer.

    Args:
        records: Records to serialize
        workspace_root: Absolute workspace root; paths are made relative to it
        now: Reference time for "last updated" and relative ages

    Returns:
        Document text
    """
    records = list(records)
    if now is None:
        now = datetime.now(timezone.utc)
    local_now = now.astimezone()

    lines = [
        "# TIMEPON FILE TRACKING",
        f"# {_comment(workspace_root)}",
        f"# {RULE}",
        f"# Last Updated:     {local_now.strftime('%A, %d %B %Y')} at {local_now.strftime('%H:%M:%S')}",
        f"# Files Tracked:    {len(records)}",
        "#",
        "# TIP: Use code folding to collapse folders (click arrows by line numbers)",
        "#",
        "# Ctrl+K Ctrl+0 = fold all | Ctrl+K Ctrl+J = unfold all",
        f"# {RULE}",
        "",
        f"workspace: {_scalar(workspace_root)}",
        f"lastUpdated: {_scalar(now.isoformat())}",
        f"totalFiles: {len(records)}",
        "",
        "files:",
        "",
        f"{INDENT}# === {ROOT_ICON} {ROOT_KEY}",
        f"{INDENT}{ROOT_KEY}:",
    ]
    _render_level(build_tree(records, workspace_root), 2, now, lines)
    lines.extend([
        "",
        f"# {RULE}",
        "# End of Timepon tracking data",
        f"# {RULE}",
    ])
    return "\n".join(lines) + "\n"


def _is_file_entry(value: Any) -> bool:
    return isinstance(value, dict) and isinstance(value.get("created"), (str, datetime))


def records_from_files(files: dict, workspace_root: str) -> list[FileRecord]:
    """Flatten a parsed ``files`` mapping back into FileRecords.

    Entries that cannot be interpreted are skipped with a warning.
    """
    records = []

    def walk(mapping: dict, parts: list[str]) -> None:
        for name, value in mapping.items():
            segments = parts + [str(name)]
            if _is_file_entry(value):
                try:
                    records.append(FileRecord(
                        path=os.path.join(workspace_root, *segments),
                        created=parse_created(value["created"]),
                        summary=str(value.get("summary") or ""),
                        tags=[str(t) for t in value.get("tags") or []],
                        stale=bool(value.get("stale", False)),
                        stale_reason=str(value.get("staleReason") or ""),
                    ))
                except (TypeError, ValueError) as e:
                    logger.warning("Skipping unreadable entry %s: %s", "/".join(segments), e)
            elif isinstance(value, dict):
                walk(value, segments)

    root = files.get(ROOT_KEY, files)
    if isinstance(root, dict):
        walk(root, [])
    return records
