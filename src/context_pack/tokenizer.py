"""Tokenizer capability.

The pipeline only depends on the `Tokenizer` protocol: an exact
`encode`/`decode` pair plus a cheap `approximate_count` used when a call
fails. The default backend is tiktoken; `get_tokenizer` builds it once per
encoding name and remembers initialisation failures so repeated calls fail
fast instead of retrying.
"""

from __future__ import annotations

import math
import os
import threading
from typing import TYPE_CHECKING, Protocol, runtime_checkable

import tiktoken

from context_pack.exceptions import TokenizerInitError
from context_pack.logging import logger

if TYPE_CHECKING:
    from collections.abc import Sequence

BYTES_PER_TOKEN = 3.5


def approximate_count(text: str) -> int:
    """Estimate a token count from the UTF-8 byte length (~3.5 bytes per token).

    Args:
        text: text to measure

    Returns:
        int: estimated number of tokens, 0 for empty text
    """
    if not text:
        return 0
    return math.ceil(len(text.encode("utf-8")) / BYTES_PER_TOKEN)


@runtime_checkable
class Tokenizer(Protocol):
    """Exact encode/decode contract consumed by truncation and counting."""

    name: str

    def encode(self, text: str) -> list[int]: ...

    def decode(self, tokens: Sequence[int]) -> str: ...

    def approximate_count(self, text: str) -> int: ...


class TiktokenTokenizer:
    """`Tokenizer` backed by a tiktoken BPE encoding."""

    def __init__(self, encoding: tiktoken.Encoding) -> None:
        self._encoding = encoding
        self.name = encoding.name

    def encode(self, text: str) -> list[int]:
        # Special-token text inside source files is ordinary content here.
        return self._encoding.encode(text, disallowed_special=())

    def decode(self, tokens: Sequence[int]) -> str:
        return self._encoding.decode(list(tokens))

    def approximate_count(self, text: str) -> int:
        return approximate_count(text)


class TokenizerGate:
    """Bound concurrent access to a shared tokenizer.

    Wraps any `Tokenizer` behind a counting semaphore sized to the host's
    parallelism; fanning more threads into one native codec only adds
    contention.
    """

    def __init__(self, tokenizer: Tokenizer, max_concurrency: int | None = None) -> None:
        self._tokenizer = tokenizer
        self.max_concurrency = max(1, max_concurrency or os.cpu_count() or 1)
        self._semaphore = threading.BoundedSemaphore(self.max_concurrency)
        self.name = tokenizer.name

    @property
    def wrapped(self) -> Tokenizer:
        """The underlying tokenizer."""
        return self._tokenizer

    def encode(self, text: str) -> list[int]:
        with self._semaphore:
            return self._tokenizer.encode(text)

    def decode(self, tokens: Sequence[int]) -> str:
        with self._semaphore:
            return self._tokenizer.decode(tokens)

    def approximate_count(self, text: str) -> int:
        return self._tokenizer.approximate_count(text)


def count_tokens(tokenizer: Tokenizer, text: str) -> int:
    """Count tokens exactly, falling back to the approximation if encoding fails.

    Args:
        tokenizer: tokenizer capability to use
        text: text to count

    Returns:
        int: token count
    """
    if not text:
        return 0
    try:
        return len(tokenizer.encode(text))
    except Exception as e:  # noqa: BLE001
        logger.warning("token count failed, using approximation", tokenizer=tokenizer.name, error=str(e))
        return tokenizer.approximate_count(text)


_INSTANCES: dict[str, Tokenizer] = {}
_FAILURES: dict[str, TokenizerInitError] = {}
_LOCK = threading.Lock()


def get_tokenizer(encoding: str) -> Tokenizer:
    """Return the shared tokenizer for `encoding`, creating it on first use.

    Args:
        encoding: tiktoken encoding name, e.g. `cl100k_base`

    Raises:
        TokenizerInitError: if the encoding cannot be loaded; the failure is
            remembered and raised again on later calls without retrying.

    Returns:
        Tokenizer: the tokenizer instance
    """
    with _LOCK:
        if encoding in _INSTANCES:
            return _INSTANCES[encoding]
        if encoding in _FAILURES:
            raise _FAILURES[encoding]
        try:
            tokenizer = TiktokenTokenizer(tiktoken.get_encoding(encoding))
        except Exception as e:
            error = TokenizerInitError(encoding=encoding, reason=str(e) or e.__class__.__name__)
            _FAILURES[encoding] = error
            logger.error("tokenizer initialization failed", encoding=encoding, error=str(e))
            raise error from e
        _INSTANCES[encoding] = tokenizer
        return tokenizer


def reset_tokenizer_cache() -> None:
    """Forget cached tokenizers and failures."""
    with _LOCK:
        _INSTANCES.clear()
        _FAILURES.clear()
