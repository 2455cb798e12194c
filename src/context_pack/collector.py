from __future__ import annotations

from functools import partial
from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field, computed_field

from context_pack.aggregate import count_output_tokens, enforce_total_limit
from context_pack.config import FileRecord
from context_pack.discovery import FileDiscovery, PathNormalizer
from context_pack.file_manipulation import relpath
from context_pack.logging import logger
from context_pack.output_construction import build_file_list, build_json, build_text
from context_pack.processing import FileProcessor
from context_pack.settings import OutputFormat
from context_pack.token_limits import TokenLimitResolver
from context_pack.tokenizer import TokenizerGate, get_tokenizer

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from context_pack.settings import Settings
    from context_pack.tokenizer import Tokenizer

    Renderer = Callable[[Path, Sequence[FileRecord]], str]


class CollectionResult(BaseModel):
    """Everything produced by one run.

    Attributes:
        base: Directory the displayed paths are relative to.
        files: Processed files, in discovery order.
        total_tokens: Token count of `output`.
        output: The rendered document.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    base: Path = Field(..., description="Directory displayed paths are relative to")
    files: list[FileRecord] = Field(default_factory=list, description="Processed files")
    total_tokens: int = Field(default=0, ge=0, description="Tokens in the rendered output")
    output: str = Field(default="", description="Rendered document")

    @computed_field
    @property
    def file_count(self) -> int:
        return len(self.files)

    @computed_field
    @property
    def file_list(self) -> list[str]:
        """Relative paths of the collected files."""
        return [relpath(f.path, self.base) for f in self.files]


def select_renderer(settings: Settings) -> Renderer:
    """Pick the output builder matching `settings`."""
    if settings.list_only:
        return build_file_list
    if settings.format == OutputFormat.JSON:
        return build_json
    return partial(build_text, show_tree=settings.show_tree)


class ContextCollector:
    """Run the discovery, processing, rendering and counting pipeline.

    The tokenizer is acquired first so a broken backend fails the run before
    any file is touched. Discovery and per-file processing follow; the
    rendered document is tokenized once and checked against
    `SafetyLimits.max_total_tokens`. Nothing is returned when a safety limit
    is exceeded.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        tokenizer: Tokenizer | None = None,
        renderer: Renderer | None = None,
        normalizer: PathNormalizer | None = None,
    ) -> None:
        self.settings = settings
        self.tokenizer = tokenizer
        self.renderer = renderer or select_renderer(settings)
        self.normalizer = normalizer or PathNormalizer()

    def collect(self) -> CollectionResult:
        """Package the configured inputs.

        Raises:
            TokenizerInitError: if the tokenizer backend cannot be loaded
            TooManyFilesError: if discovery selects more than `max_files` files
            TooManyTokensError: if the output exceeds `max_total_tokens`
            NotAGitRepositoryError: in diff mode, outside a repository
            GitCommandError: if a git command fails

        Returns:
            CollectionResult: the rendered document and its statistics
        """
        settings = self.settings
        workers = settings.workers or None
        tokenizer = self.tokenizer or get_tokenizer(settings.encoding)
        gate = TokenizerGate(tokenizer, workers)

        discovered = FileDiscovery(settings, normalizer=self.normalizer).discover()

        processor = FileProcessor(
            resolver=TokenLimitResolver(settings.max_tokens, settings.token_limits),
            base=discovered.base,
            limits=settings.limits,
            tokenizer=gate,
            count_tokens=settings.count_tokens,
            max_workers=workers,
        )
        records = processor.process_files(discovered.files)

        output = self.renderer(discovered.base, records)
        total = count_output_tokens(output, gate)
        enforce_total_limit(total, settings.limits)
        logger.info("collection done", files=len(records), tokens=total)
        return CollectionResult(base=discovered.base, files=records, total_tokens=total, output=output)


def collect(
    settings: Settings,
    *,
    tokenizer: Tokenizer | None = None,
    renderer: Renderer | None = None,
) -> CollectionResult:
    """Shortcut for `ContextCollector(settings, ...).collect()`."""
    return ContextCollector(settings, tokenizer=tokenizer, renderer=renderer).collect()
