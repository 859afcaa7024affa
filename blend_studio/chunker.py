# blend_studio/chunker.py
# Ses/video dosyalarini istek limitine sigan parcalara boler

import math
from typing import Iterator, List


def encoded_size(raw_size: int) -> int:
    """Size of ``raw_size`` bytes after base64 encoding."""
    return 4 * math.ceil(raw_size / 3)


def max_chunk_size(request_limit: int, overhead: int = 0) -> int:
    """Largest raw chunk whose base64 form plus ``overhead`` fits in ``request_limit``."""
    budget = request_limit - overhead
    if budget < 4:
        raise ValueError(f"request limit {request_limit} leaves no room for payload")
    return (budget // 4) * 3


def count_chunks(size: int, chunk_size: int) -> int:
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")
    if size <= 0:
        return 1
    return math.ceil(size / chunk_size)


def iter_chunks(data: bytes, chunk_size: int) -> Iterator[bytes]:
    """
    Yields ordered, contiguous slices of ``data`` no larger than ``chunk_size``.
    Empty input yields a single empty slice.
    """
    total = count_chunks(len(data), chunk_size)
    view = memoryview(data)
    for index in range(total):
        start = index * chunk_size
        yield bytes(view[start:start + chunk_size])


def split_payload(data: bytes, chunk_size: int) -> List[bytes]:
    return list(iter_chunks(data, chunk_size))
