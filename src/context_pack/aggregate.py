from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING

from context_pack.exceptions import TooManyTokensError
from context_pack.logging import logger
from context_pack.tokenizer import TokenizerGate, count_tokens

if TYPE_CHECKING:
    from context_pack.config import SafetyLimits
    from context_pack.tokenizer import Tokenizer

CHUNK_THRESHOLD = 100_000


def split_into_chunks(text: str, chunk_size: int = CHUNK_THRESHOLD) -> list[str]:
    """Split `text` into pieces of about `chunk_size` characters.

    Pieces end right after a newline when one exists in the window, so the
    split never lands inside a character and rarely inside a token.
    Concatenating the pieces gives back `text`.

    Args:
        text: text to split
        chunk_size: target size of each piece, in characters

    Returns:
        list[str]: the pieces, empty for empty text
    """
    size = max(1, chunk_size)
    chunks: list[str] = []
    start = 0
    n = len(text)
    while start < n:
        end = min(start + size, n)
        if end < n:
            newline = text.rfind("\n", start, end)
            if newline >= start:
                end = newline + 1
        chunks.append(text[start:end])
        start = end
    return chunks


def count_output_tokens(
    text: str,
    tokenizer: Tokenizer,
    *,
    chunk_threshold: int = CHUNK_THRESHOLD,
    max_workers: int | None = None,
) -> int:
    """Count the tokens of the assembled output in a single pass.

    Text above `chunk_threshold` characters is split at newline boundaries
    and the chunks are counted concurrently; all calls go through a
    `TokenizerGate` so the shared tokenizer sees bounded concurrency.

    Args:
        text: the finished output document
        tokenizer: tokenizer capability, gated or not
        chunk_threshold: size above which the text is chunked
        max_workers: thread count; host parallelism when None

    Returns:
        int: total token count
    """
    if not text:
        return 0
    gate = tokenizer if isinstance(tokenizer, TokenizerGate) else TokenizerGate(tokenizer, max_workers)
    if len(text) <= chunk_threshold:
        return count_tokens(gate, text)

    chunks = split_into_chunks(text, chunk_threshold)
    logger.debug("counting output tokens in chunks", chunks=len(chunks), chars=len(text))
    with ThreadPoolExecutor(max_workers=min(gate.max_concurrency, len(chunks))) as pool:
        return sum(pool.map(lambda chunk: count_tokens(gate, chunk), chunks))


def enforce_total_limit(total: int, limits: SafetyLimits) -> None:
    """Abort when the output holds more tokens than allowed.

    Raises:
        TooManyTokensError: if `total` exceeds `limits.max_total_tokens`
    """
    if total > limits.max_total_tokens:
        logger.error("token limit exceeded", total=total, limit=limits.max_total_tokens)
        raise TooManyTokensError(total=total, limit=limits.max_total_tokens)
