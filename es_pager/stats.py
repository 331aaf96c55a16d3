"""Per-query progress counters + structured fetch events"""

from __future__ import annotations

import logging
import time
from dataclasses import asdict, dataclass
from typing import Callable

from .log import literal

logger = logging.getLogger(__name__)


@dataclass
class FetchEvent:
    """One completed (or aborted) paginated query.

    Emitted once per Paginator.fetch through the on_event callback and
    logged as a single line.
    """

    phase: str
    index: str
    strategy: str
    predicate: str
    pages: int
    docs: int
    total_hits: int | None
    elapsed_ms: float
    complete: bool
    error: str | None = None

    def as_dict(self) -> dict:
        return asdict(self)


EventCallback = Callable[[FetchEvent], None]


class FetchStats:
    """
    Page/doc counters for one paginated query.

    Options:
        log_fn:       progress log function (default: logger.info)
        log_interval: log every N pages, plus the first page (default: 1)

    Usage:
        stats = FetchStats("query1")
        stats.update(len(hits), total_hits=resp_total, page_ms=t.ms)
        logger.info(f"{stats.docs:,} docs in {stats.pages} pages")
    """

    def __init__(
        self,
        phase: str,
        *,
        log_fn: Callable[..., None] | None = None,
        log_interval: int = 1,
    ):
        self.phase = phase
        self.pages = 0
        self.docs = 0
        self.total_hits: int | None = None
        self.page_ms = 0.0
        self._start = time.perf_counter()
        self._log_fn = log_fn or logger.info
        self._log_interval = max(1, log_interval)

    def update(self, count: int, *, total_hits: int | None = None, page_ms: float = 0.0):
        self.pages += 1
        self.docs += count
        self.page_ms += page_ms
        if total_hits is not None and self.total_hits is None:
            self.total_hits = total_hits

        if self.pages == 1 or self.pages % self._log_interval == 0:
            total = f"{self.total_hits:,}" if self.total_hits is not None else "?"
            self._log_fn(
                f"{literal(self.phase)}|Batch {self.pages}: Fetched {count:,} docs "
                f"([cyan]{page_ms:.0f}ms[/cyan]). Total fetched: {self.docs:,}/{total}"
            )

    @property
    def wall_ms(self) -> float:
        return (time.perf_counter() - self._start) * 1000

    def event(
        self,
        *,
        index: str,
        strategy: str,
        predicate: str,
        complete: bool,
        error: str | None = None,
    ) -> FetchEvent:
        return FetchEvent(
            phase=self.phase,
            index=index,
            strategy=strategy,
            predicate=predicate,
            pages=self.pages,
            docs=self.docs,
            total_hits=self.total_hits,
            elapsed_ms=round(self.wall_ms, 1),
            complete=complete,
            error=error,
        )
