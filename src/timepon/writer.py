"""Durable persistence of the tracking document.

Saves are full rewrites through a uniquely named temporary sibling and
``os.replace``, serialized by a lock so concurrent saves land in call order. A
failed save starts one background retry task (tenacity, exponential backoff of
``2**attempt * base_delay``); the caller is never blocked and never sees the
error. Loading backs up and resets a document that cannot be parsed.
"""

import asyncio
import contextlib
import enum
import logging
import os
import shutil
import tempfile
import time
from typing import Optional

import yaml
from tenacity import (
    AsyncRetrying,
    RetryError,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from .models import FileRecord
from .tree import records_from_files

logger = logging.getLogger(__name__)

SAVE_RETRY_MAX = 3
SAVE_RETRY_BASE_DELAY = 1.0  # seconds
DOCUMENT_MODE = 0o644


class CorruptStateError(Exception):
    """Raised when the persisted document cannot be parsed."""
    pass


class PersistResult(enum.Enum):
    SAVED = "saved"
    RETRY_SCHEDULED = "retry_scheduled"
    EXHAUSTED = "exhausted"


class DurableWriter:
    """Writes and loads the tracking document at ``path``."""

    def __init__(
        self,
        path: str,
        max_retries: int = SAVE_RETRY_MAX,
        base_delay: float = SAVE_RETRY_BASE_DELAY,
    ):
        self.path = path
        self.max_retries = max_retries
        self.base_delay = base_delay
        self._lock = asyncio.Lock()
        self._retry_task: Optional[asyncio.Task] = None

    @property
    def tmp_prefix(self) -> str:
        """Name prefix of the temporaries; ``mkstemp`` appends a unique suffix."""
        return os.path.basename(self.path) + ".tmp."

    def _write(self, document: str) -> None:
        fd, tmp_path = tempfile.mkstemp(
            dir=os.path.dirname(self.path) or None, prefix=self.tmp_prefix
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(document)
            os.chmod(tmp_path, DOCUMENT_MODE)
            os.replace(tmp_path, self.path)
        except OSError:
            with contextlib.suppress(OSError):
                os.unlink(tmp_path)
            raise

    async def _locked_write(self, document: str) -> None:
        async with self._lock:
            await asyncio.to_thread(self._write, document)

    def backoff_delay(self, attempt: int) -> float:
        return (2 ** attempt) * self.base_delay

    async def persist(self, document: str) -> PersistResult:
        """Write ``document``, scheduling background retries on failure.

        Saves run one at a time in call order. A pending retry from an earlier
        call is cancelled, since this document supersedes the one it was
        carrying.

        Returns:
            SAVED, RETRY_SCHEDULED, or EXHAUSTED when retries are disabled
        """
        async with self._lock:
            self._cancel_retry()
            try:
                await asyncio.to_thread(self._write, document)
            except OSError as e:
                logger.error(
                    "Error saving metadata (attempt 1/%d): %s", self.max_retries + 1, e
                )
                if self.max_retries <= 0:
                    logger.error("Failed to save metadata to %s. Data may be lost!", self.path)
                    return PersistResult.EXHAUSTED
                self._retry_task = asyncio.create_task(self._retry(document))
                return PersistResult.RETRY_SCHEDULED

        logger.debug("Metadata saved to %s", self.path)
        return PersistResult.SAVED

    async def _retry(self, document: str) -> bool:
        # the failed write in persist() was attempt zero
        delay = self.backoff_delay(1)
        logger.warning("Retrying metadata save in %.1fs", delay)
        await asyncio.sleep(delay)

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_retries),
            # continues the 2b, 4b, 8b, ... schedule
            wait=wait_exponential(multiplier=self.backoff_delay(2)),
            retry=retry_if_exception_type(OSError),
            before_sleep=before_sleep_log(logger, logging.WARNING),
        )
        try:
            async for attempt in retrying:
                with attempt:
                    await self._locked_write(document)
        except RetryError as e:
            logger.error(
                "Failed to save metadata after %d retries. Data may be lost! Last error: %s",
                self.max_retries, e.last_attempt.exception(),
            )
            return False

        logger.info("Metadata saved to %s after retrying", self.path)
        return True

    def _cancel_retry(self) -> None:
        if self._retry_task is not None and not self._retry_task.done():
            self._retry_task.cancel()
        self._retry_task = None

    @property
    def retry_pending(self) -> bool:
        return self._retry_task is not None and not self._retry_task.done()

    async def wait_for_retry(self) -> Optional[bool]:
        """Wait for the pending retry task.

        Returns:
            True if a retry saved the document, False if retries ran out,
            None if no retry was pending.
        """
        task = self._retry_task
        if task is None:
            return None
        try:
            return await task
        except asyncio.CancelledError:
            return None

    async def close(self) -> None:
        """Cancel any pending retry once in-flight writes finish; its document is lost."""
        async with self._lock:
            if self.retry_pending:
                logger.warning("Abandoning pending metadata save retry for %s", self.path)
            self._cancel_retry()

    def _parse(self, text: str) -> dict:
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise CorruptStateError(f"Invalid YAML: {e}") from e
        if not isinstance(data, dict):
            raise CorruptStateError("Invalid YAML structure: not a mapping")
        return data

    def _backup(self) -> Optional[str]:
        backup_path = f"{self.path}.backup.{int(time.time() * 1000)}"
        try:
            shutil.copyfile(self.path, backup_path)
        except OSError as e:
            logger.error("Failed to create backup of %s: %s", self.path, e)
            return None
        logger.warning("Corrupted metadata backed up to: %s", backup_path)
        return backup_path

    def _load(self, workspace_root: str) -> list[FileRecord]:
        if not os.path.exists(self.path):
            logger.info("No existing metadata found, starting fresh")
            return []

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                text = f.read()
            data = self._parse(text)
        except (OSError, UnicodeDecodeError, CorruptStateError) as e:
            logger.error("Failed to load metadata from %s: %s", self.path, e)
            if os.path.exists(self.path):
                self._backup()
            return []

        files = data.get("files")
        if not isinstance(files, dict):
            logger.warning("Metadata document has no valid files section, starting fresh")
            return []

        records = records_from_files(files, workspace_root)
        logger.info("Loaded metadata for %d files", len(records))
        return records

    async def load(self, workspace_root: str) -> list[FileRecord]:
        """Read the document back into records.

        A missing document yields no records. An unparsable one is copied to
        ``<path>.backup.<epoch-ms>`` and yields no records. A parsable one
        without a ``files`` mapping yields no records and is left in place.
        """
        return await asyncio.to_thread(self._load, workspace_root)
