"""
Fan-out fetch: dependent docs whose foreign key is IN a large id set

The id list is cut into contiguous chunks of chunk_size (the last chunk may be
shorter) and each chunk runs one terms-query pagination. Results are
concatenated in chunk order, without deduplication.

Cursor scope:
    scroll -> one scroll per chunk
    pit    -> one snapshot for the whole invocation, closed once at the end

Failure policy:
    abort -> the first failed chunk raises FanOutError
    skip  -> failed chunks are logged and recorded, the rest still run,
             and the result comes back with complete=False
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Sequence

from .data import batch_iter
from .errors import FanOutError, PaginationError
from .log import get_logger, literal
from .paginator import FetchResult, Paginator
from .predicate import DEFAULT_MAX_TERMS, Predicate
from .timer import timer

logger = get_logger("fanout")

FAILURE_POLICIES = ("abort", "skip")


@dataclass
class ChunkFailure:
    chunk: int          # 0-based chunk number
    start: int          # offset of the chunk in the id list
    size: int
    error: PaginationError


@dataclass
class FanOutResult:
    index: str
    phase: str
    strategy: str
    rows: list[tuple] = field(default_factory=list)
    chunks: int = 0             # chunk queries issued
    pages: int = 0
    failed_chunks: list[ChunkFailure] = field(default_factory=list)
    truncated_chunks: int = 0   # stopped by max_pages
    elapsed_ms: float = 0.0

    @property
    def complete(self) -> bool:
        return not self.failed_chunks and not self.truncated_chunks

    def __len__(self) -> int:
        return len(self.rows)

    def column(self, i: int = 0) -> list:
        return [row[i] for row in self.rows]


class FanOutBatcher:
    """
    Usage:
        batcher = FanOutBatcher(paginator, chunk_size=10000)
        result = await batcher.fetch(
            account_ids, "positions", "Position.accountId",
            ["Position.positionId", "Position.accountId"],
            phase="query2.2",
        )
    """

    def __init__(
        self,
        paginator: Paginator,
        *,
        chunk_size: int = 10000,
        max_terms: int = DEFAULT_MAX_TERMS,
        failure_policy: str = "abort",
    ):
        if chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {chunk_size}")
        if chunk_size > max_terms:
            raise ValueError(
                f"chunk_size={chunk_size:,} exceeds max_terms={max_terms:,}"
            )
        if failure_policy not in FAILURE_POLICIES:
            raise ValueError(
                f"unknown failure_policy {failure_policy!r} (expected one of {FAILURE_POLICIES})"
            )
        self.paginator = paginator
        self.chunk_size = chunk_size
        self.max_terms = max_terms
        self.failure_policy = failure_policy

    async def fetch(
        self,
        ids: Sequence[str],
        index: str,
        field: str,
        fields: Sequence[str],
        *,
        phase: str = "fanout",
    ) -> FanOutResult:
        result = FanOutResult(index=index, phase=phase, strategy=self.paginator.strategy)
        n_chunks = -(-len(ids) // self.chunk_size)

        logger.info(
            f"{literal(phase)}|{literal(field)} IN [{len(ids):,} ids] -> {n_chunks} chunk(s) "
            f"of <= {self.chunk_size:,} ({self.paginator.strategy}, policy={self.failure_policy})"
        )
        if not ids:
            return result

        with timer() as t:
            async with self.paginator.scope(index, phase=phase) as scope:
                for chunk_no, (start, chunk) in enumerate(batch_iter(ids, self.chunk_size)):
                    chunk_phase = f"{phase}|chunk {chunk_no + 1}/{n_chunks}"
                    predicate = Predicate.is_in(field, chunk, max_terms=self.max_terms)
                    result.chunks += 1
                    try:
                        fetched: FetchResult = await scope.fetch(
                            predicate, fields, phase=chunk_phase
                        )
                    except PaginationError as e:
                        self._on_chunk_error(result, chunk_no, start, len(chunk), e)
                        continue
                    result.rows.extend(fetched.rows)
                    result.pages += fetched.pages
                    if not fetched.complete:
                        result.truncated_chunks += 1

        result.elapsed_ms = t.ms
        status = ""
        if result.failed_chunks:
            status += f" [red]{len(result.failed_chunks)} chunk(s) failed[/red]"
        if result.truncated_chunks:
            status += f" [yellow]{result.truncated_chunks} chunk(s) truncated[/yellow]"
        logger.info(
            f"{literal(phase)}|Total fetched: {len(result.rows):,} rows "
            f"from {result.chunks} chunk(s) in [cyan]{t.ms:.0f}ms[/cyan]{status}"
        )
        return result

    def _on_chunk_error(
        self,
        result: FanOutResult,
        chunk_no: int,
        start: int,
        size: int,
        error: PaginationError,
    ):
        if self.failure_policy == "skip":
            logger.warning(
                f"{literal(result.phase)}|chunk {chunk_no + 1} ({size:,} ids from offset {start:,}) "
                f"skipped: {literal(error)}"
            )
            result.failed_chunks.append(ChunkFailure(chunk_no, start, size, error))
            return

        logger.error(
            f"***{literal(result.phase)}|aborting at chunk {chunk_no + 1} "
            f"after {len(result.rows):,} rows: {literal(error)}"
        )
        partial = None
        if self.paginator.keep_partial:
            partial = FetchResult(
                index=result.index,
                phase=result.phase,
                strategy=result.strategy,
                rows=result.rows + (error.partial.rows if error.partial else []),
                pages=result.pages + error.pages,
                complete=False,
            )
        raise FanOutError(
            f"chunk {chunk_no + 1} failed with {type(error).__name__}",
            chunk=chunk_no,
            cause=error,
            phase=result.phase,
            pages=result.pages + error.pages,
            docs=len(result.rows) + error.docs,
            partial=partial,
        ) from error
