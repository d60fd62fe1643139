"""Physical result files: attachment contents and raw result payloads."""

import mimetypes
from abc import ABC, abstractmethod
from pathlib import Path, PurePath

import magic

SNIFF_SIZE = 2048


def guess_content_type(file_name: str) -> str | None:
    """Guess a MIME type from the file name extension."""
    return mimetypes.guess_type(file_name, strict=False)[0]


def guess_extension(content_type: str | None) -> str:
    """Return the canonical extension of a MIME type, or an empty string."""
    if not content_type:
        return ""
    return mimetypes.guess_extension(content_type, strict=False) or ""


def sniff_content_type(head: bytes) -> str | None:
    """Detect a MIME type from the file's leading bytes with libmagic."""
    if not head:
        return None
    return magic.from_buffer(head, mime=True)


class ResultFile(ABC):
    """File produced by a test run, read lazily."""

    def __init__(self, original_file_name: str) -> None:
        """Initialize with the name the file was written as."""
        self.original_file_name = original_file_name
        self._sniffed = False
        self._sniffed_content_type: str | None = None

    @abstractmethod
    def read_bytes(self) -> bytes:
        """Return the full file content."""

    @abstractmethod
    def read_head(self, size: int) -> bytes:
        """Return at most ``size`` leading bytes of the content."""

    @abstractmethod
    def get_content_length(self) -> int:
        """Return the file size in bytes."""

    def get_content_type(self) -> str | None:
        """Return the MIME type from the extension, else from the content.

        The content is sniffed at most once per file, from its first
        ``SNIFF_SIZE`` bytes.
        """
        content_type = guess_content_type(self.original_file_name)
        if content_type:
            return content_type

        if not self._sniffed:
            self._sniffed_content_type = sniff_content_type(self.read_head(SNIFF_SIZE))
            self._sniffed = True
        return self._sniffed_content_type

    def get_extension(self) -> str:
        """Return the file extension with the leading dot.

        Falls back to the canonical extension of the detected content type
        when the file name has none.
        """
        suffix = PurePath(self.original_file_name).suffix
        if suffix:
            return suffix
        return guess_extension(self.get_content_type())


class BufferResultFile(ResultFile):
    """Result file held in memory."""

    def __init__(self, content: bytes, original_file_name: str) -> None:
        """Initialize with the file content and name."""
        super().__init__(original_file_name)
        self._content = content

    def read_bytes(self) -> bytes:
        return self._content

    def read_head(self, size: int) -> bytes:
        return self._content[:size]

    def get_content_length(self) -> int:
        return len(self._content)


class PathResultFile(ResultFile):
    """Result file on disk."""

    def __init__(self, path: Path, original_file_name: str | None = None) -> None:
        """Initialize with the file path and, optionally, a different name."""
        super().__init__(original_file_name or path.name)
        self.path = path

    def read_bytes(self) -> bytes:
        return self.path.read_bytes()

    def read_head(self, size: int) -> bytes:
        with self.path.open("rb") as f:
            return f.read(size)

    def get_content_length(self) -> int:
        return self.path.stat().st_size
