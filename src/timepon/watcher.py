"""Workspace watcher built on watchdog.

Emits three kinds of callbacks on the asyncio loop that started it:
  - ``on_add(path, stat)`` for every existing file found by the initial scan,
    and for every new file once it has been quiet for the stability window
  - ``on_ready()`` once, after the initial scan has been fully delivered
  - ``on_remove(path)`` when a file is deleted or moved away
Ignored paths never reach the callbacks; ignored directories are not walked.
"""

import asyncio
import logging
import os
import stat as stat_module
from typing import Awaitable, Callable, Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .ignore import IgnoreFilter

logger = logging.getLogger(__name__)

AddCallback = Callable[[str, Optional[os.stat_result]], Awaitable[None]]
RemoveCallback = Callable[[str], Awaitable[None]]
ReadyCallback = Callable[[], Awaitable[None]]

STABILITY_THRESHOLD = 2.0  # seconds


class _EventHandler(FileSystemEventHandler):
    """Hands watchdog events from the observer thread to the event loop."""

    def __init__(self, watcher: "WorkspaceWatcher", loop: asyncio.AbstractEventLoop):
        self._watcher = watcher
        self._loop = loop

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.is_directory or self._loop.is_closed():
            return
        dest = getattr(event, "dest_path", None) or None
        try:
            self._loop.call_soon_threadsafe(
                self._watcher._dispatch, event.event_type, os.fsdecode(event.src_path),
                os.fsdecode(dest) if dest else None,
            )
        except RuntimeError:
            # loop shut down between the check and the call
            pass


class WorkspaceWatcher:
    """Watches a workspace tree and reports settled file additions."""

    def __init__(
        self,
        workspace_root: str,
        ignore_filter: IgnoreFilter,
        on_add: AddCallback,
        on_ready: Optional[ReadyCallback] = None,
        on_remove: Optional[RemoveCallback] = None,
        stability_threshold: float = STABILITY_THRESHOLD,
    ):
        """
        Args:
            workspace_root: Directory to watch recursively
            ignore_filter: Filter applied to every file and directory
            on_add: Called for each new or pre-existing file
            on_ready: Called once after the initial scan
            on_remove: Called when a file disappears
            stability_threshold: Quiet period before a new file is reported
        """
        self.workspace_root = os.path.abspath(workspace_root)
        self.ignore_filter = ignore_filter
        self.on_add = on_add
        self.on_ready = on_ready
        self.on_remove = on_remove
        self.stability_threshold = stability_threshold

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._observer: Optional[Observer] = None
        self._pending: dict[str, asyncio.TimerHandle] = {}
        self._tasks: set[asyncio.Task] = set()
        self.ready = asyncio.Event()

    @property
    def running(self) -> bool:
        return self._observer is not None

    async def start(self) -> None:
        """Start observing, then scan existing files in the background.

        Raises:
            RuntimeError: if the watcher is already running
        """
        if self._observer is not None:
            raise RuntimeError("Watcher already started")

        self._loop = asyncio.get_running_loop()
        observer = Observer()
        observer.schedule(_EventHandler(self, self._loop), self.workspace_root, recursive=True)
        await asyncio.to_thread(observer.start)
        self._observer = observer
        logger.info(
            "File watcher initialized with %d ignore patterns: %s",
            self.ignore_filter.pattern_count, self.workspace_root,
        )
        self._spawn(self._initial_scan())

    async def stop(self) -> None:
        """Stop the observer thread and drop pending work. Safe to call twice."""
        for handle in self._pending.values():
            handle.cancel()
        self._pending.clear()

        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()

        observer, self._observer = self._observer, None
        if observer is not None:
            observer.stop()
            await asyncio.to_thread(observer.join)
            logger.info("File watcher stopped")

    async def __aenter__(self) -> "WorkspaceWatcher":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    # --- initial scan ---

    def scan(self) -> list[str]:
        """Walk the workspace, pruning ignored directories.

        Returns:
            Sorted absolute paths of every file that passes the ignore filter
        """
        found = []
        for root, dirs, filenames in os.walk(self.workspace_root):
            dirs[:] = [
                d for d in dirs
                if not self.ignore_filter.should_ignore(os.path.join(root, d))
            ]
            for name in filenames:
                path = os.path.join(root, name)
                if not self.ignore_filter.should_ignore(path):
                    found.append(path)
        return sorted(found)

    async def _initial_scan(self) -> None:
        paths = await asyncio.to_thread(self.scan)
        logger.info("Initial scan found %d files", len(paths))
        for path in paths:
            await self._emit_add(path)
        self.ready.set()
        if self.on_ready is not None:
            try:
                await self.on_ready()
            except Exception:
                logger.exception("Ready handler failed")

    # --- live events ---

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _dispatch(self, event_type: str, src: str, dest: Optional[str]) -> None:
        if self._observer is None:
            return
        if event_type in ("created", "modified", "closed"):
            self._arm(src)
        elif event_type == "deleted":
            self._removed(src)
        elif event_type == "moved":
            self._removed(src)
            if dest:
                self._arm(dest)

    def _arm(self, path: str) -> None:
        """(Re)start the stability timer for ``path``."""
        if self.ignore_filter.should_ignore(path):
            return
        handle = self._pending.pop(path, None)
        if handle is not None:
            handle.cancel()
        self._pending[path] = self._loop.call_later(
            self.stability_threshold, self._settled, path
        )

    def _settled(self, path: str) -> None:
        self._pending.pop(path, None)
        self._spawn(self._emit_add(path))

    def _removed(self, path: str) -> None:
        handle = self._pending.pop(path, None)
        if handle is not None:
            handle.cancel()
        if self.on_remove is None or self.ignore_filter.should_ignore(path):
            return
        self._spawn(self._emit_remove(path))

    async def _emit_add(self, path: str) -> None:
        try:
            stat = await asyncio.to_thread(os.stat, path)
        except OSError as e:
            logger.debug("File vanished before it could be tracked: %s (%s)", path, e)
            return
        if not stat_module.S_ISREG(stat.st_mode):
            return
        try:
            await self.on_add(path, stat)
        except Exception:
            logger.exception("Add handler failed for %s", path)

    async def _emit_remove(self, path: str) -> None:
        try:
            await self.on_remove(path)
        except Exception:
            logger.exception("Remove handler failed for %s", path)
