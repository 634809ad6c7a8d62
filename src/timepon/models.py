"""Records and tree nodes shared across the package."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal, Union

MAX_TAGS = 3
MAX_SUMMARY_LENGTH = 80


@dataclass
class FileRecord:
    """Descriptive metadata for one tracked file."""
    path: str  # absolute
    created: datetime
    summary: str
    tags: list[str] = field(default_factory=list)
    stale: bool = False
    stale_reason: str = ""

    def __post_init__(self):
        self.created = self.created.replace(microsecond=0)
        self.summary = self.summary[:MAX_SUMMARY_LENGTH]
        self.tags = list(self.tags)[:MAX_TAGS]

    def mark_stale(self, reason: str) -> None:
        self.stale = True
        self.stale_reason = reason

    def to_dict(self, rel_path: str) -> dict:
        """Query payload form, with the path relative to the workspace root."""
        data = {
            "path": rel_path,
            "created": self.created.isoformat(),
            "summary": self.summary,
            "tags": list(self.tags),
        }
        if self.stale:
            data["stale"] = True
            data["staleReason"] = self.stale_reason
        return data


@dataclass
class FileNode:
    """Leaf of the serialized tree."""
    name: str
    record: FileRecord
    kind: Literal["file"] = "file"


@dataclass
class DirectoryNode:
    """Container of the serialized tree; children keyed by path segment."""
    name: str
    children: dict[str, "TreeNode"] = field(default_factory=dict)
    kind: Literal["directory"] = "directory"

    def directory(self, name: str) -> "DirectoryNode":
        """Return the child directory ``name``, creating it if needed."""
        child = self.children.get(name)
        if child is None or child.kind != "directory":
            child = DirectoryNode(name)
            self.children[name] = child
        return child


TreeNode = Union[DirectoryNode, FileNode]
