from __future__ import annotations

import os
from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING

from context_pack.config import FileRecord, SafetyLimits, SkipReason
from context_pack.file_manipulation import has_binary_marker, relpath
from context_pack.logging import logger
from context_pack.truncation import truncate_head_tail

if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path

    from context_pack.token_limits import TokenLimitResolver
    from context_pack.tokenizer import Tokenizer

MIB = 1024 * 1024


def default_workers() -> int:
    """Thread count used when none is configured."""
    return min(32, (os.cpu_count() or 1) + 4)


class FileReader:
    """Turn one path into its text or a skip sentinel.

    Attributes:
        limits: caps applied before the file is opened
    """

    def __init__(self, limits: SafetyLimits | None = None) -> None:
        self.limits = limits or SafetyLimits()

    def oversized(self, path: Path, size: int) -> FileRecord | None:
        """Return a sentinel record when `size` exceeds the per-file cap."""
        if size <= self.limits.max_file_size:
            return None
        logger.info("skipping large file", path=str(path), size=size, limit=self.limits.max_file_size)
        return FileRecord(
            path=path,
            content=SkipReason.TOO_LARGE.render(size_mb=size // MIB, limit_mb=self.limits.max_file_size // MIB),
            skip_reason=SkipReason.TOO_LARGE,
        )

    def read_file(self, path: Path) -> FileRecord | str:
        """Read `path` as UTF-8 text.

        Args:
            path: absolute path of the file

        Raises:
            OSError: if the file cannot be opened or read

        Returns:
            FileRecord | str: the decoded text, or a record carrying the
                sentinel for an oversized, binary or non UTF-8 file
        """
        record = self.oversized(path, path.stat().st_size)
        if record is not None:
            return record
        data = path.read_bytes()
        if has_binary_marker(data):
            logger.debug("skipping binary file", path=str(path))
            return FileRecord(path=path, content=SkipReason.BINARY.render(), skip_reason=SkipReason.BINARY)
        try:
            return data.decode("utf-8")
        except UnicodeDecodeError:
            logger.debug("skipping non utf-8 file", path=str(path))
            return FileRecord(
                path=path,
                content=SkipReason.INVALID_ENCODING.render(),
                skip_reason=SkipReason.INVALID_ENCODING,
            )


class FileProcessor:
    """Read files concurrently and apply per-file token ceilings.

    In the default zero-tokenization mode files are only read and decoded;
    counting happens once on the assembled output. With `count_tokens`
    (stats mode) each file is tokenized and truncated to its resolved limit.
    """

    def __init__(
        self,
        *,
        resolver: TokenLimitResolver,
        base: Path,
        limits: SafetyLimits | None = None,
        tokenizer: Tokenizer | None = None,
        count_tokens: bool = False,
        max_workers: int | None = None,
    ) -> None:
        if count_tokens and tokenizer is None:
            msg = "a tokenizer is required when count_tokens is enabled"
            raise ValueError(msg)
        self.resolver = resolver
        self.base = base
        self.reader = FileReader(limits)
        self.tokenizer = tokenizer
        self.count_tokens = count_tokens
        self.max_workers = max_workers or default_workers()

    def process_file(self, path: Path) -> FileRecord | None:
        """Process one file.

        Args:
            path: absolute path of the file

        Returns:
            FileRecord | None: the record, or None when the file could not be
                read; the failure is logged and the other files are unaffected
        """
        limit = self.resolver.resolve(path.name, relpath(path, self.base))
        try:
            size = path.stat().st_size
            oversized = self.reader.oversized(path, size)
            if oversized is not None:
                return oversized
            if limit == 0:
                return FileRecord(
                    path=path,
                    content=SkipReason.PATTERN_EXCLUDED.render(),
                    skip_reason=SkipReason.PATTERN_EXCLUDED,
                )
            text = self.reader.read_file(path)
        except OSError as e:
            logger.warning("cannot read file, skipping", path=str(path), error=str(e))
            return None

        if isinstance(text, FileRecord):
            return text
        if not self.count_tokens or self.tokenizer is None:
            return FileRecord(path=path, content=text)

        result = truncate_head_tail(text, limit, self.tokenizer)
        if result.truncated:
            logger.debug(
                "truncated file",
                path=str(path),
                tokens=result.original_token_count,
                limit=limit,
            )
        return FileRecord(
            path=path,
            content=result.content,
            token_count=result.token_count,
            original_token_count=result.original_token_count,
            truncated=result.truncated,
        )

    def process_files(self, paths: Sequence[Path]) -> list[FileRecord]:
        """Process `paths` concurrently.

        Args:
            paths: files in discovery order

        Returns:
            list[FileRecord]: one record per readable file, in the order of `paths`
        """
        if not paths:
            return []
        workers = max(1, min(self.max_workers, len(paths)))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="context-pack") as pool:
            results = list(pool.map(self.process_file, paths))
        records = [r for r in results if r is not None]
        if len(records) != len(paths):
            logger.warning("some files could not be read", requested=len(paths), processed=len(records))
        return records
