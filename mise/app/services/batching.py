from __future__ import annotations

from typing import Iterator, Sequence, TypeVar

T = TypeVar("T")

# Bound parameters allowed in one statement; multi-row inserts stay under it.
DEFAULT_MAX_PARAMS_PER_STATEMENT = 100


def rows_per_statement(columns: int, max_params: int = DEFAULT_MAX_PARAMS_PER_STATEMENT) -> int:
    if columns <= 0:
        raise ValueError(f"columns must be positive, got {columns}")
    if columns > max_params:
        raise ValueError(f"A single row of {columns} columns exceeds the {max_params} parameter limit")
    return max_params // columns


def chunk_rows(
    rows: Sequence[T],
    columns: int,
    max_params: int = DEFAULT_MAX_PARAMS_PER_STATEMENT,
) -> Iterator[list[T]]:
    """Split ``rows`` so every chunk binds at most ``max_params`` parameters.

    Order is preserved and no chunk is empty; zero rows yield zero chunks.
    """
    size = rows_per_statement(columns, max_params)
    for start in range(0, len(rows), size):
        yield list(rows[start:start + size])
