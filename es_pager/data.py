"""Batching helpers"""

from __future__ import annotations

from itertools import islice
from typing import Iterable, Iterator, Sequence, TypeVar

T = TypeVar("T")


def batch_iter(
    items: Sequence[T], batch_size: int
) -> Iterator[tuple[int, Sequence[T]]]:
    """
    Split a sequence into contiguous batches; the last one may be shorter.

    Yields:
        (start_index, batch)

    Usage:
        for start, chunk in batch_iter(account_ids, 10000):
            process(start, chunk)
    """
    if batch_size <= 0:
        raise ValueError(f"batch_size must be positive, got {batch_size}")
    for i in range(0, len(items), batch_size):
        yield i, items[i : i + batch_size]


def stream_batches(items: Iterable[T], batch_size: int) -> Iterator[list[T]]:
    """batch_iter for generators: never holds more than one batch."""
    if batch_size <= 0:
        raise ValueError(f"batch_size must be positive, got {batch_size}")
    it = iter(items)
    while batch := list(islice(it, batch_size)):
        yield batch
