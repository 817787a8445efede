"""Size-bounded batching for transports with hard per-message limits.

``bounded_batches`` packs records greedily, in order, into the fewest
sequential batches that respect both a record-count cap and a cumulative
weight cap. A record heavier than the weight cap on its own is never dropped
or split: it travels alone in a single-record batch.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Callable, TypeVar

R = TypeVar("R")

ELLIPSIS = "…"
_SENTENCE_END = ".!?"


def bounded_batches(
    records: Sequence[R],
    max_count: int,
    max_weight: int,
    weight: Callable[[R], int],
) -> list[list[R]]:
    """Split *records* into batches under *max_count* and *max_weight*.

    Args:
        records: Records in delivery order.
        max_count: Maximum number of records per batch.
        max_weight: Maximum summed ``weight`` per batch.
        weight: Returns the weight of one record.

    Returns:
        Non-empty batches whose concatenation equals *records*.

    Examples:
        >>> [len(b) for b in bounded_batches(list(range(12)), 10, 100, lambda r: 1)]
        [10, 2]
    """
    batches: list[list[R]] = []
    current: list[R] = []
    current_weight = 0

    for record in records:
        w = weight(record)
        if current and (len(current) >= max_count or current_weight + w > max_weight):
            batches.append(current)
            current = []
            current_weight = 0
        current.append(record)
        current_weight += w

    if current:
        batches.append(current)
    return batches


def truncate(text: str, limit: int) -> str:
    """Shorten *text* to at most *limit* characters.

    Prefers to end on the last ``.``, ``!`` or ``?`` past the midpoint of the
    limit; otherwise hard-cuts and appends an ellipsis.

    Examples:
        >>> truncate("One. Two three four five", 12)
        'One. Two th…'
        >>> truncate("Short.", 100)
        'Short.'
    """
    if len(text) <= limit:
        return text

    cut = text[: limit - 1]
    boundary = max(cut.rfind(ch) for ch in _SENTENCE_END)
    if boundary > limit // 2:
        return cut[: boundary + 1]
    return cut + ELLIPSIS
