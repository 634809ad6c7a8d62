"""In-memory metadata index and the query operations over it.

The index maps absolute file paths to FileRecords and is the single source of
truth for queries; the YAML tree is only a projection written by the writer.
All query results are sorted newest-created first and carry paths relative to
the workspace root.
"""

import asyncio
import logging
import math
import numbers
import os
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional

from .classify import read_content, read_content_async
from .extract import generate_tags, summarize
from .models import FileRecord

logger = logging.getLogger(__name__)

REFRESH_BATCH_SIZE = 10
REMOVED_REASON = "File removed from workspace"


class InvalidArgumentError(ValueError):
    """Raised when a query parameter fails validation."""
    pass


@dataclass
class RefreshStats:
    """Outcome of a refresh_all() run."""
    updated: int = 0
    stale: int = 0
    errors: int = 0

    def message(self) -> str:
        if self.stale > 0:
            return (
                f"Metadata refresh complete. Updated {self.updated} files, "
                f"{self.stale} marked stale ({self.errors} errors)."
            )
        return f"Metadata refresh complete. Updated {self.updated} files, {self.errors} errors."


def creation_time(stat: os.stat_result) -> datetime:
    """Filesystem birth time, or modification time where birth time is unavailable."""
    timestamp = getattr(stat, "st_birthtime", None) or stat.st_mtime
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).replace(microsecond=0)


def _describe(path: str) -> tuple[os.stat_result, str, list[str]]:
    stat = os.stat(path)
    content = read_content(path, stat)
    return stat, summarize(content, path), generate_tags(content, path)


class MetadataIndex:
    """Mapping of absolute path to FileRecord, plus read and refresh operations."""

    def __init__(self, workspace_root: str, records: Optional[Iterable[FileRecord]] = None):
        self.workspace_root = os.path.abspath(workspace_root)
        self._records: dict[str, FileRecord] = {}
        for record in records or ():
            self._records[record.path] = record

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, path: str) -> bool:
        return path in self._records

    def get(self, path: str) -> Optional[FileRecord]:
        return self._records.get(path)

    def records(self) -> list[FileRecord]:
        return list(self._records.values())

    def paths(self) -> list[str]:
        return list(self._records)

    def replace_all(self, records: Iterable[FileRecord]) -> None:
        """Swap in a freshly loaded set of records."""
        self._records = {record.path: record for record in records}

    def insert(self, record: FileRecord) -> FileRecord:
        """Add a record unless its path is tracked; the tracked record wins."""
        existing = self._records.get(record.path)
        if existing is not None:
            return existing
        self._records[record.path] = record
        return record

    async def track(self, path: str, stat: Optional[os.stat_result] = None) -> Optional[FileRecord]:
        """Handle a qualifying add event for ``path``.

        Untracked paths get a new record. A tracked path that went stale (for
        example removed and re-created) is refreshed with its original creation
        time. Read failures drop the event.

        Args:
            path: Absolute file path
            stat: Stat result delivered with the event, if any

        Returns:
            The new or refreshed record, or None if nothing changed.
        """
        existing = self._records.get(path)
        if existing is not None:
            if not existing.stale:
                return None
            return existing if await self._refresh_one(path) else None

        try:
            if stat is None:
                stat = await asyncio.to_thread(os.stat, path)
            content = await read_content_async(path, stat)
        except OSError as e:
            logger.warning("Error handling file creation for %s: %s", path, e)
            return None

        record = FileRecord(
            path=path,
            created=creation_time(stat),
            summary=summarize(content, path),
            tags=generate_tags(content, path),
        )
        self._drop_shadowed_tombstones(path)
        # another add for the same path may have finished while we were reading
        record = self.insert(record)
        logger.info("Tracked new file: %s", self.relative(path))
        return record

    def _drop_shadowed_tombstones(self, path: str) -> None:
        """Forget tombstones that a file at ``path`` makes impossible.

        A file cannot coexist with a file at an ancestor path or with files
        below it, so such tombstones would collide in the document tree.
        """
        prefix = path + os.sep
        for other in list(self._records):
            record = self._records[other]
            if not record.stale or other == path:
                continue
            if path.startswith(other + os.sep) or other.startswith(prefix):
                del self._records[other]
                logger.info(
                    "Dropped tombstone %s: path reused by %s",
                    self.relative(other), self.relative(path),
                )

    def mark_removed(self, path: str) -> Optional[FileRecord]:
        """Tombstone a tracked record whose file left the workspace."""
        record = self._records.get(path)
        if record is None or record.stale:
            return None
        record.mark_stale(REMOVED_REASON)
        logger.info("File removed, marked stale: %s", self.relative(path))
        return record

    def relative(self, path: str) -> str:
        return os.path.relpath(path, self.workspace_root)

    # --- queries ---

    def _payload(self, records: Iterable[FileRecord]) -> list[dict]:
        ordered = sorted(records, key=lambda r: r.created, reverse=True)
        return [r.to_dict(self.relative(r.path)) for r in ordered]

    def list_all(self) -> list[dict]:
        """Every tracked record."""
        return self._payload(self._records.values())

    def list_by_tag(self, tag: str) -> list[dict]:
        """Records whose tags contain ``tag`` exactly."""
        if not isinstance(tag, str) or not tag:
            raise InvalidArgumentError("Tag parameter must be a non-empty string")
        return self._payload(r for r in self._records.values() if tag in r.tags)

    def list_recent(self, hours: float, now: Optional[datetime] = None) -> list[dict]:
        """Records created strictly within the last ``hours`` hours."""
        if (
            isinstance(hours, bool) or not isinstance(hours, numbers.Real)
            or math.isnan(hours) or hours <= 0
        ):
            raise InvalidArgumentError("Hours parameter must be a positive number")
        if now is None:
            now = datetime.now(timezone.utc)
        try:
            cutoff = now - timedelta(hours=hours)
        except OverflowError:
            # window reaches past year 1
            cutoff = datetime.min.replace(tzinfo=timezone.utc)
        return self._payload(r for r in self._records.values() if r.created > cutoff)

    def search(self, query: str) -> list[dict]:
        """Case-insensitive substring match on file name or summary."""
        if not isinstance(query, str) or not query:
            raise InvalidArgumentError("Query parameter must be a non-empty string")
        needle = query.lower()
        return self._payload(
            r for r in self._records.values()
            if needle in os.path.basename(r.path).lower() or needle in r.summary.lower()
        )

    # --- refresh ---

    async def _refresh_one(self, path: str) -> bool:
        record = self._records[path]
        try:
            _, summary, tags = await asyncio.to_thread(_describe, path)
        except Exception as e:
            logger.warning("Failed to refresh %s: %s", path, e)
            record.mark_stale(str(e))
            return False

        record.summary = summary
        record.tags = tags
        record.stale = False
        record.stale_reason = ""
        return True

    async def refresh_all(self, batch_size: int = REFRESH_BATCH_SIZE) -> RefreshStats:
        """Re-read every tracked path, ``batch_size`` at a time.

        Creation times are preserved. A path that cannot be read is marked
        stale without affecting the rest of its batch.
        """
        logger.info("Refreshing metadata for %d files", len(self._records))
        stats = RefreshStats()
        paths = self.paths()

        for start in range(0, len(paths), batch_size):
            batch = paths[start:start + batch_size]
            results = await asyncio.gather(*(self._refresh_one(p) for p in batch))
            for ok in results:
                if ok:
                    stats.updated += 1
                else:
                    stats.errors += 1
                    stats.stale += 1

        return stats
