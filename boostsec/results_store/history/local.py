"""History log stored as a local JSON Lines file."""

import logging
import os
from pathlib import Path
from typing import BinaryIO

from boostsec.results_store.errors import (
    HistoryModifiedExternallyError,
    HistoryShortReadError,
    InvalidHistoryLimitError,
)
from boostsec.results_store.history.base import History
from boostsec.results_store.models.history import HistoryDataPoint

logger = logging.getLogger(__name__)

CHUNK_SIZE = 8192
NEWLINE = b"\n"


class LocalHistory(History):
    """Size-bounded history file, one JSON entry per line, oldest first.

    Retention works on raw bytes: the file is scanned backward in fixed-size
    chunks to find where the most recent entries start, and rotation copies
    those bytes untouched to the beginning of the file. Memory use is bounded
    by one chunk whatever the file size.
    """

    def __init__(
        self, history_path: Path, limit: int | None = None, chunk_size: int = CHUNK_SIZE
    ) -> None:
        """Initialize history.

        Args:
            history_path: Path to the history file
            limit: Number of entries to keep, None keeps everything
            chunk_size: Size of the scan buffer in bytes

        """
        self.history_path = history_path
        self.limit = limit
        self._buffer = bytearray(chunk_size)
        self._cache: list[HistoryDataPoint] | None = None

    async def read_history(self) -> list[HistoryDataPoint]:
        """Return the most recent ``limit`` entries, oldest first.

        The first call reads the file; later calls are served from memory.

        Raises:
            InvalidHistoryLimitError: If the limit is negative
            HistoryModifiedExternallyError: If the file changes during the scan
            HistoryShortReadError: If the file can't be read completely

        """
        self._validate_limit()

        if self._cache is not None:
            return list(self._cache)

        try:
            history_file = self.history_path.open("rb")
        except FileNotFoundError:
            logger.info(f"History file {self.history_path} not found, starting empty")
            self._cache = []
            return []

        with history_file:
            initial = os.fstat(history_file.fileno())
            start = self._find_first_entry_offset(history_file, self.limit, initial)
            self._ensure_unchanged(history_file, initial)

            history_file.seek(start)
            # Lines may hold bytes that are not valid UTF-8.
            entries = [
                HistoryDataPoint.model_validate_json(
                    line.decode("utf-8", errors="replace")
                )
                for line in history_file
                if line.strip()
            ]

        logger.info(
            f"Read {len(entries)} history entries",
            extra={"history_path": str(self.history_path), "limit": self.limit},
        )
        self._cache = entries
        return list(entries)

    async def append_history(self, entry: HistoryDataPoint) -> None:
        """Append an entry and rotate the file to at most ``limit`` entries.

        Retained bytes are moved as-is, so content that isn't valid UTF-8
        survives the rotation.

        Raises:
            InvalidHistoryLimitError: If the limit is negative
            HistoryModifiedExternallyError: If the file changes during rotation
            HistoryShortReadError: If the file can't be read completely

        """
        self._validate_limit()
        self.history_path.parent.mkdir(parents=True, exist_ok=True)

        line = entry.to_json().encode("utf-8") + NEWLINE

        try:
            history_file = self.history_path.open("r+b")
            exists = True
        except FileNotFoundError:
            history_file = self.history_path.open("w+b")
            exists = False

        with history_file:
            if self.limit == 0:
                history_file.truncate(0)
            elif not exists:
                history_file.write(line)
            else:
                initial = os.fstat(history_file.fileno())
                keep = None if self.limit is None else self.limit - 1
                start = self._find_first_entry_offset(history_file, keep, initial)
                self._ensure_unchanged(history_file, initial)

                end = self._move_to_front(history_file, start, initial)
                history_file.seek(end)
                history_file.write(line)
                history_file.truncate(end + len(line))

        logger.info(
            f"Appended history entry {entry.uuid}",
            extra={"history_path": str(self.history_path), "limit": self.limit},
        )
        self._update_cache(entry)

    def _validate_limit(self) -> None:
        if self.limit is not None and self.limit < 0:
            raise InvalidHistoryLimitError(self.limit)

    def _update_cache(self, entry: HistoryDataPoint) -> None:
        if self._cache is None:
            return

        if self.limit == 0:
            self._cache = []
            return

        self._cache.append(entry)
        if self.limit is not None and len(self._cache) > self.limit:
            del self._cache[: len(self._cache) - self.limit]

    def _find_first_entry_offset(
        self, history_file: BinaryIO, limit: int | None, initial: os.stat_result
    ) -> int:
        """Return the offset of the first of the last ``limit`` lines.

        Scans backward from the end of the file, one chunk at a time, counting
        newline bytes. A 0x0a byte only ever encodes a newline in UTF-8, so no
        decoding is needed.
        """
        if limit is None:
            return 0

        position = initial.st_size
        if position == 0 or limit == 0:
            return position

        view = memoryview(self._buffer)
        remaining = limit

        while position:
            to_read = min(position, len(self._buffer))
            position -= to_read

            history_file.seek(position)
            read = history_file.readinto(view[:to_read])
            if read != to_read:
                self._raise_short_read(history_file, initial, to_read, read or 0)

            index = self._buffer.rfind(NEWLINE, 0, to_read)
            while index >= 0:
                if remaining == 0:
                    return position + index + 1
                remaining -= 1
                index = self._buffer.rfind(NEWLINE, 0, index)

        return 0

    def _move_to_front(
        self, history_file: BinaryIO, start: int, initial: os.stat_result
    ) -> int:
        """Copy the bytes from ``start`` to the end of file to offset 0.

        Returns:
            Number of bytes kept

        """
        size = initial.st_size
        if start == 0:
            return size

        view = memoryview(self._buffer)
        read_position = start
        write_position = 0

        while read_position < size:
            to_read = min(size - read_position, len(self._buffer))

            history_file.seek(read_position)
            read = history_file.readinto(view[:to_read])
            if read != to_read:
                if os.fstat(history_file.fileno()).st_size != size:
                    raise HistoryModifiedExternallyError(str(self.history_path))
                raise HistoryShortReadError(str(self.history_path), to_read, read or 0)

            history_file.seek(write_position)
            history_file.write(view[:read])

            read_position += read
            write_position += read

        return write_position

    def _ensure_unchanged(self, history_file: BinaryIO, initial: os.stat_result) -> None:
        current = os.fstat(history_file.fileno())
        if (
            current.st_size != initial.st_size
            or current.st_mtime_ns != initial.st_mtime_ns
        ):
            raise HistoryModifiedExternallyError(str(self.history_path))

    def _raise_short_read(
        self,
        history_file: BinaryIO,
        initial: os.stat_result,
        expected: int,
        actual: int,
    ) -> None:
        self._ensure_unchanged(history_file, initial)
        raise HistoryShortReadError(str(self.history_path), expected, actual)
