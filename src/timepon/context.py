"""Process context: one object owning config, index, writer and watcher.

Everything the MCP tools and the watcher callbacks touch lives here, so there
is no module-level state. Use it as an async context manager; leaving the
block always stops the watcher.
"""

import asyncio
import logging
import os
from typing import Optional

from .config import TimeponConfig
from .ignore import IgnoreFilter, ensure_ignore_file
from .models import FileRecord
from .store import MetadataIndex, RefreshStats
from .tree import render_document
from .watcher import WorkspaceWatcher
from .writer import DurableWriter, PersistResult

logger = logging.getLogger(__name__)


class TimeponContext:
    """Owns the metadata index and keeps it in sync with the workspace."""

    def __init__(self, config: TimeponConfig):
        self.config = config
        self.index = MetadataIndex(config.workspace_root)
        self.writer = DurableWriter(
            config.document_path,
            max_retries=config.save_retry_max,
            base_delay=config.save_retry_base_delay,
        )
        self.watcher: Optional[WorkspaceWatcher] = None
        # suppresses per-file saves until the initial scan settles
        self.initializing = False

    @property
    def workspace_root(self) -> str:
        return self.config.workspace_root

    async def load(self) -> int:
        """Replace the index with the persisted document's records."""
        records = await self.writer.load(self.workspace_root)
        self.index.replace_all(records)
        return len(records)

    def ignore_filter(self) -> IgnoreFilter:
        return IgnoreFilter(self.workspace_root, self.config.document_name)

    async def start(self, watch: bool = True) -> None:
        """Prepare the workspace, load the document and start watching.

        Args:
            watch: Start the filesystem watcher (False for query-only use)
        """
        await asyncio.to_thread(ensure_ignore_file, self.workspace_root)
        await self.load()
        if not watch:
            return

        self.initializing = True
        self.watcher = WorkspaceWatcher(
            self.workspace_root,
            self.ignore_filter(),
            on_add=self.handle_added,
            on_ready=self.handle_ready,
            on_remove=self.handle_removed,
            stability_threshold=self.config.stability_threshold,
        )
        await self.watcher.start()
        logger.info("Timepon started. Watching: %s", self.workspace_root)

    async def close(self) -> None:
        """Stop the watcher and abandon pending save retries."""
        watcher, self.watcher = self.watcher, None
        if watcher is not None:
            await watcher.stop()
        await self.writer.close()

    async def __aenter__(self) -> "TimeponContext":
        try:
            await self.start()
        except BaseException:
            await self.close()
            raise
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    # --- persistence ---

    def render(self) -> str:
        return render_document(self.index.records(), self.workspace_root)

    async def save(self) -> PersistResult:
        return await self.writer.persist(self.render())

    # --- watcher callbacks ---

    async def handle_added(
        self, path: str, stat: Optional[os.stat_result] = None
    ) -> Optional[FileRecord]:
        record = await self.index.track(path, stat)
        if record is not None and not self.initializing:
            await self.save()
        return record

    async def handle_removed(self, path: str) -> Optional[FileRecord]:
        record = self.index.mark_removed(path)
        if record is not None and not self.initializing:
            await self.save()
        return record

    async def handle_ready(self) -> None:
        self.initializing = False
        await self.save()
        logger.info("Initial file scan complete: %d files tracked", len(self.index))

    # --- operations ---

    async def refresh_metadata(self) -> RefreshStats:
        """Re-read every tracked file, then save once."""
        stats = await self.index.refresh_all(self.config.refresh_batch_size)
        await self.save()
        return stats

    async def scan_once(self) -> int:
        """Track every qualifying file without watching, then save once.

        Returns:
            Number of newly tracked files
        """
        watcher = WorkspaceWatcher(
            self.workspace_root, self.ignore_filter(), on_add=self.handle_added
        )
        paths = await asyncio.to_thread(watcher.scan)

        self.initializing = True
        added = 0
        try:
            for path in paths:
                if await self.handle_added(path) is not None:
                    added += 1
        finally:
            self.initializing = False
        await self.save()
        return added
