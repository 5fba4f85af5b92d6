"""Batching helpers for size-limited API writes"""

from typing import Iterator, List, Sequence, Tuple, TypeVar


T = TypeVar("T")

# Spotify accepts at most 100 URIs per playlist write
PLAYLIST_BATCH_SIZE = 100


def chunked(items: Sequence[T], batch_size: int = PLAYLIST_BATCH_SIZE) -> Iterator[Tuple[int, List[T]]]:
    """Split ``items`` into consecutive batches.

    Args:
        items: Items to split, order preserved
        batch_size: Maximum number of items per batch

    Yields:
        (offset, batch) pairs, where offset is the index of the batch's first item
    """
    if batch_size < 1:
        raise ValueError("batch_size must be at least 1")
    for i in range(0, len(items), batch_size):
        yield i, list(items[i:i + batch_size])
