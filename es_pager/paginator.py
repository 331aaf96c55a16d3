"""
Cursor-based pagination: scroll vs. point-in-time + search_after

Both strategies fetch every hit matching a predicate, one page per request,
and release their server-side context on every exit path.

    Scroll: search(scroll=keep_alive) -> scroll(scroll_id) ... -> empty page -> clear_scroll
    PIT:    open_point_in_time -> search(pit, sort, search_after) ... -> empty page -> close_point_in_time

Usage:
    paginator = ScrollPaginator(es, page_size=10000, keep_alive="2m")
    result = await paginator.fetch(
        "accounts",
        Predicate.equals("Account.businessSystemCode", "system_163"),
        ["Account.accountId"],
        phase="query1",
    )
    account_ids = result.column(0)

    # several queries over one snapshot
    async with PointInTimePaginator(es).scope("positions") as scope:
        a = await scope.fetch(p1, fields)
        b = await scope.fetch(p2, fields)
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Awaitable, Callable, Sequence

from elasticsearch import AsyncElasticsearch

from .errors import ES_ERRORS, MalformedPredicateError, classify_error
from .log import get_logger, literal
from .predicate import Predicate, project
from .stats import EventCallback, FetchStats
from .timer import timer

logger = get_logger("paginator")

STRATEGIES = ("scroll", "pit")
DEFAULT_PIT_SORT = [{"_shard_doc": "asc"}]


@dataclass
class FetchResult:
    """Projected rows of one paginated query, in page order."""

    index: str
    phase: str
    strategy: str
    rows: list[tuple] = field(default_factory=list)
    total_hits: int | None = None  # advisory, from the first page
    pages: int = 0
    elapsed_ms: float = 0.0
    complete: bool = True

    def __len__(self) -> int:
        return len(self.rows)

    def column(self, i: int = 0) -> list:
        return [row[i] for row in self.rows]


def _body(resp: Any) -> dict:
    # ObjectApiResponse -> dict; test doubles already return dicts
    return getattr(resp, "body", resp)


def _total_hits(resp: dict) -> int | None:
    total = resp.get("hits", {}).get("total")
    if isinstance(total, dict):
        return total.get("value")
    return total


class CursorScope(ABC):
    """Runs one or more fetches against an index under a single cursor scope."""

    def __init__(self, paginator: Paginator, index: str, phase: str):
        self.paginator = paginator
        self.index = index
        self.phase = phase

    @abstractmethod
    async def fetch(
        self, predicate: Predicate, fields: Sequence[str], *, phase: str | None = None
    ) -> FetchResult:
        ...

    def _query(self, predicate: Predicate, phase: str) -> dict:
        try:
            return predicate.to_query()
        except MalformedPredicateError as e:
            e.phase = phase
            logger.error(f"***{literal(phase)}|{literal(e)}")
            raise


class Paginator(ABC):
    """
    Fetch-everything pagination over one strategy.

    Args:
        es:            AsyncElasticsearch (or any object with the same methods)
        page_size:     hits per request
        max_page_size: per-request ceiling (index.max_result_window)
        keep_alive:    scroll / PIT keep-alive, refreshed on every page
        max_pages:     stop after N pages with complete=False (None = no cap)
        keep_partial:  attach rows fetched before a failure to the raised error
        on_event:      called with a FetchEvent after every fetch
    """

    strategy: str = ""

    def __init__(
        self,
        es: AsyncElasticsearch,
        *,
        page_size: int = 10000,
        max_page_size: int = 10000,
        keep_alive: str = "2m",
        max_pages: int | None = None,
        keep_partial: bool = False,
        on_event: EventCallback | None = None,
    ):
        if page_size <= 0:
            raise ValueError(f"page_size must be positive, got {page_size}")
        if page_size > max_page_size:
            raise ValueError(
                f"page_size={page_size:,} exceeds the per-request ceiling {max_page_size:,}"
            )
        if max_pages is not None and max_pages <= 0:
            raise ValueError(f"max_pages must be positive, got {max_pages}")
        self.es = es
        self.page_size = page_size
        self.keep_alive = keep_alive
        self.max_pages = max_pages
        self.keep_partial = keep_partial
        self.on_event = on_event

    @abstractmethod
    def scope(self, index: str, *, phase: str | None = None) -> AsyncIterator[CursorScope]:
        """Async context manager yielding a CursorScope for index."""

    async def fetch(
        self,
        index: str,
        predicate: Predicate,
        fields: Sequence[str],
        *,
        phase: str | None = None,
    ) -> FetchResult:
        """Fetch every hit for predicate under a scope of its own."""
        async with self.scope(index, phase=phase) as scope:
            return await scope.fetch(predicate, fields, phase=phase)

    # ================================================================
    # shared page loop
    # ================================================================

    async def _paginate(
        self,
        *,
        index: str,
        phase: str,
        predicate: Predicate,
        fields: Sequence[str],
        first_page: Callable[[], Awaitable[Any]],
        next_page: Callable[[dict], Awaitable[Any]],
        cursor_held: bool,
    ) -> FetchResult:
        """
        first_page() -> response, next_page(previous_response) -> response.
        Stops on the first empty page. cursor_held=True means every request
        already runs against an open cursor, so a 404 means it expired.
        """
        stats = FetchStats(phase)
        rows: list[tuple] = []
        complete = True
        advancing = cursor_held

        try:
            with timer() as t:
                resp = _body(await first_page())
            while True:
                hits = resp["hits"]["hits"]
                if not hits:
                    break
                rows.extend(project(hit.get("_source"), fields) for hit in hits)
                stats.update(len(hits), total_hits=_total_hits(resp), page_ms=t.ms)

                if self.max_pages is not None and stats.pages >= self.max_pages:
                    complete = False
                    logger.warning(
                        f"{literal(phase)}|max_pages={self.max_pages} reached, "
                        f"stopping at {stats.docs:,} docs"
                    )
                    break

                advancing = True
                with timer() as t:
                    resp = _body(await next_page(resp))
        except ES_ERRORS as e:
            err = classify_error(
                e, phase=phase, pages=stats.pages, docs=stats.docs, advancing=advancing
            )
            if self.keep_partial:
                err.partial = FetchResult(
                    index=index,
                    phase=phase,
                    strategy=self.strategy,
                    rows=rows,
                    total_hits=stats.total_hits,
                    pages=stats.pages,
                    elapsed_ms=stats.wall_ms,
                    complete=False,
                )
            logger.error(f"***{literal(phase)}|{type(err).__name__}: {literal(err)}")
            self._emit(
                stats.event(
                    index=index,
                    strategy=self.strategy,
                    predicate=str(predicate),
                    complete=False,
                    error=type(err).__name__,
                )
            )
            raise err from e

        result = FetchResult(
            index=index,
            phase=phase,
            strategy=self.strategy,
            rows=rows,
            total_hits=stats.total_hits,
            pages=stats.pages,
            elapsed_ms=stats.wall_ms,
            complete=complete,
        )
        self._emit(
            stats.event(
                index=index,
                strategy=self.strategy,
                predicate=str(predicate),
                complete=complete,
            )
        )
        return result

    def _emit(self, event):
        logger.info(
            f"{literal(event.phase)}|[bold]{event.strategy}[/bold] {literal(event.predicate)}: "
            f"docs={event.docs:,} pages={event.pages} "
            f"elapsed=[cyan]{event.elapsed_ms:.0f}ms[/cyan]"
            + ("" if event.complete else " [red](incomplete)[/red]"),
            extra={"fetch_event": event.as_dict()},
        )
        if self.on_event:
            self.on_event(event)

    async def _release(self, phase: str, what: str, call: Callable[[], Awaitable[Any]]):
        """Best-effort cursor release; failures are logged, never raised."""
        try:
            await call()
        except ES_ERRORS as e:
            logger.warning(f"{literal(phase)}|{what} failed (ignored): {literal(e)}")


# ============================================================
# Strategy A: scroll
# ============================================================
class _ScrollScope(CursorScope):
    """Every fetch opens its own scroll and clears it afterwards."""

    async def fetch(
        self, predicate: Predicate, fields: Sequence[str], *, phase: str | None = None
    ) -> FetchResult:
        phase = phase or self.phase
        query = self._query(predicate, phase)
        p = self.paginator
        scroll_id: str | None = None

        async def first_page():
            nonlocal scroll_id
            resp = await p.es.search(
                index=self.index,
                query=query,
                source=list(fields),
                size=p.page_size,
                scroll=p.keep_alive,
                sort=["_doc"],
            )
            scroll_id = _body(resp).get("_scroll_id")
            return resp

        async def next_page(_prev: dict):
            nonlocal scroll_id
            resp = await p.es.scroll(scroll_id=scroll_id, scroll=p.keep_alive)
            scroll_id = _body(resp).get("_scroll_id") or scroll_id
            return resp

        try:
            return await p._paginate(
                index=self.index,
                phase=phase,
                predicate=predicate,
                fields=fields,
                first_page=first_page,
                next_page=next_page,
                cursor_held=False,
            )
        finally:
            if scroll_id:
                sid = scroll_id
                await p._release(phase, "clear_scroll", lambda: p.es.clear_scroll(scroll_id=sid))


class ScrollPaginator(Paginator):
    strategy = "scroll"

    @asynccontextmanager
    async def scope(self, index: str, *, phase: str | None = None):
        yield _ScrollScope(self, index, phase or index)


# ============================================================
# Strategy B: point-in-time + search_after
# ============================================================
class _PointInTimeScope(CursorScope):
    """All fetches share one snapshot; each keeps its own search_after key."""

    def __init__(self, paginator: Paginator, index: str, phase: str, pit_id: str):
        super().__init__(paginator, index, phase)
        self.pit_id = pit_id

    async def fetch(
        self, predicate: Predicate, fields: Sequence[str], *, phase: str | None = None
    ) -> FetchResult:
        phase = phase or self.phase
        query = self._query(predicate, phase)

        async def first_page():
            return await self._search(query, fields, None)

        async def next_page(prev: dict):
            return await self._search(query, fields, prev["hits"]["hits"][-1]["sort"])

        return await self.paginator._paginate(
            index=self.index,
            phase=phase,
            predicate=predicate,
            fields=fields,
            first_page=first_page,
            next_page=next_page,
            cursor_held=True,
        )

    async def _search(self, query: dict, fields: Sequence[str], search_after: list | None):
        p = self.paginator
        kwargs: dict = {
            "query": query,
            "source": list(fields),
            "size": p.page_size,
            "sort": p.sort,
            "pit": {"id": self.pit_id, "keep_alive": p.keep_alive},
        }
        if search_after is not None:
            kwargs["search_after"] = search_after
        resp = await p.es.search(**kwargs)
        # the most recent pit_id is the one to send next (and to close)
        self.pit_id = _body(resp).get("pit_id") or self.pit_id
        return resp


class PointInTimePaginator(Paginator):
    strategy = "pit"

    def __init__(self, es: AsyncElasticsearch, *, sort: list | None = None, **kwargs):
        super().__init__(es, **kwargs)
        self.sort = sort or DEFAULT_PIT_SORT

    @asynccontextmanager
    async def scope(self, index: str, *, phase: str | None = None):
        phase = phase or index
        try:
            resp = await self.es.open_point_in_time(index=index, keep_alive=self.keep_alive)
        except ES_ERRORS as e:
            err = classify_error(e, phase=phase)
            logger.error(f"***{literal(phase)}|open_point_in_time on {literal(index)}: {literal(err)}")
            raise err from e

        scope = _PointInTimeScope(self, index, phase, _body(resp)["id"])
        logger.debug(
            f"{literal(phase)}|PIT opened on {literal(index)} (keep_alive={self.keep_alive})"
        )
        try:
            yield scope
        finally:
            await self._release(
                phase,
                "close_point_in_time",
                lambda: self.es.close_point_in_time(id=scope.pit_id),
            )


def make_paginator(strategy: str, es: AsyncElasticsearch, **kwargs) -> Paginator:
    """strategy: "scroll" | "pit" """
    if strategy == "scroll":
        return ScrollPaginator(es, **kwargs)
    if strategy == "pit":
        return PointInTimePaginator(es, **kwargs)
    raise ValueError(f"unknown strategy {strategy!r} (expected one of {STRATEGIES})")
