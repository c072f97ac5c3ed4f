"""Dump format detection for dbrestore."""

import os
from pathlib import Path
from typing import IO, Optional

from dbrestore.constants import (
    CUSTOM_ARCHIVE_MAGIC,
    DIRECTORY_TOC_FILE,
    GZIP_MAGIC,
    HEADER_READ_SIZE,
    STDIN_MARKER,
    TAR_MAGIC,
    TAR_MAGIC_OFFSET,
)
from dbrestore.errors import InputNotFoundError, UnrecognizedFormatError
from dbrestore.errors_catalog import actionable_error
from dbrestore.models import DumpFormat


class FormatDetector:
    """Classifies a dump as one of the supported formats.

    Priority: explicit override, magic bytes, file extension, then plain.
    Only the first ``HEADER_READ_SIZE`` bytes are ever read.
    """

    OVERRIDES = {
        "plain": DumpFormat.PLAIN,
        "plain-compressed": DumpFormat.PLAIN_COMPRESSED,
        "plain.gz": DumpFormat.PLAIN_COMPRESSED,
        "custom": DumpFormat.CUSTOM,
        "tar": DumpFormat.TAR,
        "directory": DumpFormat.DIRECTORY,
    }

    EXTENSIONS = {
        ".sql": DumpFormat.PLAIN,
        ".gz": DumpFormat.PLAIN_COMPRESSED,
        ".tar": DumpFormat.TAR,
        ".dump": DumpFormat.CUSTOM,
        ".custom": DumpFormat.CUSTOM,
        ".backup": DumpFormat.CUSTOM,
    }

    def __init__(self, header_size: int = HEADER_READ_SIZE):
        self.header_size = header_size

    def detect(
        self,
        file_path: str,
        explicit_format: Optional[str] = None,
        stream: Optional[IO[bytes]] = None,
    ) -> DumpFormat:
        if explicit_format:
            return self.parse_override(explicit_format)

        if file_path == STDIN_MARKER:
            header = self._peek(stream)
            return self.classify_header(header) or DumpFormat.PLAIN

        path = Path(file_path)
        if not path.exists():
            raise InputNotFoundError(actionable_error("input_not_found", path=file_path))

        if path.is_dir():
            if (path / DIRECTORY_TOC_FILE).is_file():
                return DumpFormat.DIRECTORY
            raise UnrecognizedFormatError(actionable_error("invalid_directory_dump", path=file_path))

        detected = self.classify_header(self._read_header(path))
        if detected is not None:
            return detected

        return self.classify_extension(file_path) or DumpFormat.PLAIN

    def parse_override(self, explicit_format: str) -> DumpFormat:
        try:
            return self.OVERRIDES[explicit_format.strip().lower()]
        except KeyError:
            raise UnrecognizedFormatError(
                actionable_error("unsupported_format", format=explicit_format)
            ) from None

    @staticmethod
    def classify_header(header: bytes) -> Optional[DumpFormat]:
        if header.startswith(GZIP_MAGIC):
            return DumpFormat.PLAIN_COMPRESSED
        if header.startswith(CUSTOM_ARCHIVE_MAGIC):
            return DumpFormat.CUSTOM
        end = TAR_MAGIC_OFFSET + len(TAR_MAGIC)
        if len(header) >= end and header[TAR_MAGIC_OFFSET:end] == TAR_MAGIC:
            return DumpFormat.TAR
        return None

    def classify_extension(self, file_path: str) -> Optional[DumpFormat]:
        name = os.path.basename(file_path).lower()
        if name.endswith(".sql.gz"):
            return DumpFormat.PLAIN_COMPRESSED
        return self.EXTENSIONS.get(Path(name).suffix)

    def _read_header(self, path: Path) -> bytes:
        try:
            with open(path, "rb") as file_obj:
                return file_obj.read(self.header_size)
        except OSError as exc:
            raise InputNotFoundError(
                actionable_error("input_not_readable", path=str(path))
            ) from exc

    def _peek(self, stream: Optional[IO[bytes]]) -> bytes:
        # Only buffered streams can be sniffed without consuming input.
        peek = getattr(stream, "peek", None)
        if peek is None:
            return b""
        return peek(self.header_size)[: self.header_size]


FORMAT_CHOICES = sorted(FormatDetector.OVERRIDES)
