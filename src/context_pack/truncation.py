from __future__ import annotations

import math
from functools import partial
from typing import TYPE_CHECKING

from context_pack.config import TruncationResult
from context_pack.logging import logger
from context_pack.tokenizer import BYTES_PER_TOKEN, count_tokens

if TYPE_CHECKING:
    from context_pack.tokenizer import Tokenizer

HEAD_RATIO = 0.75
# Room left for the marker line when the ceiling is large enough to afford it.
MARKER_OVERHEAD_TOKENS = 20
MARKER = "\n\n[... TRUNCATED - ~{omitted} tokens omitted ...]\n\n"


def _allowance(limit: int) -> int:
    if limit > 2 * MARKER_OVERHEAD_TOKENS:
        return limit - MARKER_OVERHEAD_TOKENS
    return max(0, limit)


def _untouched(content: str, count: int) -> TruncationResult:
    return TruncationResult(content=content, token_count=count, original_token_count=count, truncated=False)


def truncate_head_tail(content: str, limit: int, tokenizer: Tokenizer) -> TruncationResult:
    """Fit `content` into `limit` tokens keeping its beginning and its end.

    The content is encoded once. When it is over the limit the allowance is
    split 75% head / 25% tail, the token sequence is sliced in memory and the
    two slices are decoded independently, joined by a marker stating how many
    tokens were omitted.

    Args:
        content: file content
        limit: token ceiling for this file
        tokenizer: tokenizer capability

    Returns:
        TruncationResult: `token_count` counts the tokens kept from `content`
            and never exceeds `limit` when `truncated` is True
    """
    try:
        tokens = tokenizer.encode(content)
    except Exception as e:  # noqa: BLE001
        logger.warning("encode failed, truncating by characters", tokenizer=tokenizer.name, error=str(e))
        return _truncate_by_characters(content, limit, tokenizer, keep_tail=True)

    original = len(tokens)
    if original <= limit:
        return _untouched(content, original)

    allowance = _allowance(limit)
    head_n = math.floor(allowance * HEAD_RATIO)
    tail_n = math.floor(allowance * (1 - HEAD_RATIO))
    head_tokens = tokens[:head_n]
    tail_tokens = tokens[original - tail_n :] if tail_n else []
    try:
        head = tokenizer.decode(head_tokens) if head_tokens else ""
        tail = tokenizer.decode(tail_tokens) if tail_tokens else ""
    except Exception as e:  # noqa: BLE001
        logger.warning("decode failed, truncating by characters", tokenizer=tokenizer.name, error=str(e))
        return _truncate_by_characters(content, limit, tokenizer, keep_tail=True, exact_count=original)

    omitted = original - head_n - tail_n
    return TruncationResult(
        content=head + MARKER.format(omitted=omitted) + tail,
        token_count=head_n + tail_n,
        original_token_count=original,
        truncated=True,
    )


def truncate_head_only(content: str, limit: int, tokenizer: Tokenizer) -> TruncationResult:
    """Fit `content` into `limit` tokens keeping only its beginning.

    Same contract as `truncate_head_tail`: one encode, one decode, no
    per-line calls. The decoded head is returned without a marker.

    Args:
        content: file content
        limit: token ceiling for this file
        tokenizer: tokenizer capability

    Returns:
        TruncationResult: the head of `content` and its token counts
    """
    try:
        tokens = tokenizer.encode(content)
    except Exception as e:  # noqa: BLE001
        logger.warning("encode failed, truncating by characters", tokenizer=tokenizer.name, error=str(e))
        return _truncate_by_characters(content, limit, tokenizer, keep_tail=False)

    original = len(tokens)
    if original <= limit:
        return _untouched(content, original)

    head_n = max(0, limit)
    try:
        head = tokenizer.decode(tokens[:head_n]) if head_n else ""
    except Exception as e:  # noqa: BLE001
        logger.warning("decode failed, truncating by characters", tokenizer=tokenizer.name, error=str(e))
        return _truncate_by_characters(content, limit, tokenizer, keep_tail=False, exact_count=original)

    return TruncationResult(content=head, token_count=head_n, original_token_count=original, truncated=True)


def _cut_head(content: str, char_limit: int) -> str:
    if char_limit <= 0 or not content:
        return ""
    head = content[:char_limit]
    newline = head.rfind("\n")
    if newline > char_limit // 2:
        head = head[: newline + 1]
    return head


def _cut_tail(content: str, char_limit: int) -> str:
    if char_limit <= 0 or not content:
        return ""
    tail = content[-char_limit:]
    newline = tail.find("\n")
    if newline != -1 and len(tail) - newline > char_limit // 2:
        tail = tail[newline + 1 :]
    return tail


def _truncate_by_characters(
    content: str,
    limit: int,
    tokenizer: Tokenizer,
    *,
    keep_tail: bool,
    exact_count: int | None = None,
) -> TruncationResult:
    """Character-based truncation used when a tokenizer call failed.

    With `exact_count` (encoding worked, decoding did not) the decision to
    truncate and `original_token_count` use that count, character budgets
    follow the content's own characters-per-token ratio and kept pieces are
    measured with `count_tokens`. Without it everything is estimated with
    `approximate_count`. Cuts prefer line boundaries.

    Args:
        content: file content
        limit: token ceiling for this file
        tokenizer: tokenizer capability
        keep_tail: keep the end of the content behind a marker
        exact_count: token count of `content` when encoding succeeded

    Returns:
        TruncationResult: the cut content and its token counts
    """
    if exact_count is None:
        measure = tokenizer.approximate_count
        original = measure(content)
        chars_per_token = BYTES_PER_TOKEN
    else:
        measure = partial(count_tokens, tokenizer)
        original = exact_count
        chars_per_token = len(content) / max(1, original)
    if original <= limit:
        return _untouched(content, original)

    if not keep_tail:
        head = _cut_head(content, int(max(0, limit) * chars_per_token))
        while head and measure(head) > limit:
            head = head[: len(head) * 3 // 4]
        return TruncationResult(
            content=head,
            token_count=measure(head),
            original_token_count=original,
            truncated=True,
        )

    char_limit = int(_allowance(limit) * chars_per_token)
    head = _cut_head(content, int(char_limit * HEAD_RATIO))
    tail = _cut_tail(content, int(char_limit * (1 - HEAD_RATIO)))
    # Per-piece counts can exceed the ratio estimate; shrink until both fit.
    while (head or tail) and measure(head) + measure(tail) > limit:
        head = head[: len(head) * 3 // 4]
        tail = tail[len(tail) // 4 :] if len(tail) > 1 else ""
    kept = measure(head) + measure(tail)
    omitted = max(0, original - kept)
    return TruncationResult(
        content=head + MARKER.format(omitted=omitted) + tail,
        token_count=kept,
        original_token_count=original,
        truncated=True,
    )
