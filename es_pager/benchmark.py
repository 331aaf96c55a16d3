"""
Scroll vs. PIT benchmark over the accounts / positions-superindex pair

query1:   account ids from the superindex where Account.businessSystemCode == X
query2.1: account ids from the accounts-domain index, same predicate
query2.2: positions from the superindex where Position.accountId IN [query2.1 ids]

Each strategy runs query1 then query2 and reports counts, elapsed time and
the query2 - query1 difference.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, Callable

from elasticsearch import AsyncElasticsearch
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .client import build_es_client
from .config import Config
from .errors import PaginationError
from .fanout import FanOutBatcher, FanOutResult
from .log import get_logger, literal, run_log_file, setup_logging
from .paginator import STRATEGIES, FetchResult, Paginator, make_paginator
from .predicate import Predicate
from .stats import FetchEvent
from .timer import timer

console = Console()
logger = get_logger("benchmark")

BUSINESS_SYSTEM_CODE = "Account.businessSystemCode"
ACCOUNT_ID = "Account.accountId"
POSITION_ACCOUNT_ID = "Position.accountId"
POSITION_FIELDS = ["Position.positionId", "Position.accountId"]


@dataclass
class QueryOutcome:
    name: str
    count: int = 0
    elapsed_ms: float = 0.0
    complete: bool = True
    error: PaginationError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class BenchmarkReport:
    strategy: str
    query1: QueryOutcome
    query2: QueryOutcome
    events: list[FetchEvent] = field(default_factory=list)

    @property
    def difference_ms(self) -> float:
        return self.query2.elapsed_ms - self.query1.elapsed_ms


# ============================================================
# queries
# ============================================================
async def query1(paginator: Paginator, config: Config) -> FetchResult:
    """Account ids matching the predicate, straight from the superindex (one column)."""
    logger.info(
        f"Query 1 - Fetch Account IDs matching "
        f"{BUSINESS_SYSTEM_CODE}=={literal(config.predicate_value)} from {literal(config.superindex)}"
    )
    return await paginator.fetch(
        config.superindex,
        Predicate.equals(BUSINESS_SYSTEM_CODE, config.predicate_value),
        [ACCOUNT_ID],
        phase="query1",
    )


async def fetch_account_ids(paginator: Paginator, config: Config) -> list[str]:
    logger.info(
        f"Query 2.1 - Fetching accountIds from {literal(config.accounts_index)} "
        f"where {BUSINESS_SYSTEM_CODE} == {literal(config.predicate_value)}"
    )
    result = await paginator.fetch(
        config.accounts_index,
        Predicate.equals(BUSINESS_SYSTEM_CODE, config.predicate_value),
        [ACCOUNT_ID],
        phase="query2.1",
    )
    return result.column(0)


async def fetch_positions(
    paginator: Paginator, config: Config, account_ids: list[str]
) -> FanOutResult:
    logger.info(
        f"Query 2.2 - Fetching Position.positionId & Position.accountId from "
        f"{literal(config.superindex)} where {POSITION_ACCOUNT_ID} IN [{len(account_ids):,} accountIds]"
    )
    batcher = FanOutBatcher(
        paginator,
        chunk_size=config.chunk_size,
        max_terms=config.max_terms,
        failure_policy=config.chunk_failure_policy,
    )
    return await batcher.fetch(
        account_ids,
        config.superindex,
        POSITION_ACCOUNT_ID,
        POSITION_FIELDS,
        phase="query2.2",
    )


async def query2(paginator: Paginator, config: Config) -> FanOutResult:
    """Account ids from the accounts index, then their positions."""
    account_ids = await fetch_account_ids(paginator, config)
    logger.info(f"query2|Total Account IDs fetched: {len(account_ids):,}")

    if not account_ids:
        logger.info("query2|No account IDs found. Exiting.")
        return FanOutResult(
            index=config.superindex, phase="query2.2", strategy=paginator.strategy
        )

    positions = await fetch_positions(paginator, config, account_ids)
    logger.info(f"query2|Total Positions fetched: {len(positions):,}")
    return positions


# ============================================================
# runner
# ============================================================
async def _timed(name: str, run: Callable[[], Awaitable]) -> QueryOutcome:
    outcome = QueryOutcome(name)
    with timer() as t:
        try:
            result = await run()
        except PaginationError as e:
            logger.error(
                f"***{name}|failed after {e.pages} page(s) / {e.docs:,} docs: "
                f"{type(e).__name__}"
            )
            outcome.error = e
            outcome.complete = False
            result = None
    outcome.elapsed_ms = t.ms
    if result is not None:
        outcome.count = len(result)
        outcome.complete = getattr(result, "complete", True)
    logger.info(f"{name}|TOTAL TIME: [cyan]{t.ms:,.0f}ms[/cyan]")
    logger.info("---------")
    return outcome


def build_paginator(
    strategy: str, es: AsyncElasticsearch, config: Config, events: list[FetchEvent]
) -> Paginator:
    return make_paginator(
        strategy,
        es,
        page_size=config.page_size,
        max_page_size=config.max_page_size,
        keep_alive=config.keep_alive,
        max_pages=config.max_pages,
        keep_partial=config.keep_partial,
        on_event=events.append,
    )


async def run_strategy(
    es: AsyncElasticsearch, config: Config, strategy: str
) -> BenchmarkReport:
    events: list[FetchEvent] = []
    paginator = build_paginator(strategy, es, config, events)
    logger.info(f"[bold]{strategy}[/bold] (page_size={config.page_size:,}, keep_alive={config.keep_alive})")

    q1 = await _timed("query1", lambda: query1(paginator, config))
    q2 = await _timed("query2", lambda: query2(paginator, config))
    report = BenchmarkReport(strategy, q1, q2, events)

    logger.info(f"main|accountIds.length: {q1.count:,}")
    logger.info(f"main|positionIds.length: {q2.count:,}")
    logger.info(f"main|Time taken for fetching account IDs: {q1.elapsed_ms:,.0f} ms")
    logger.info(f"main|Time taken for fetching position IDs: {q2.elapsed_ms:,.0f} ms")
    logger.info(f"main|Difference in execution time: {report.difference_ms:,.0f} ms")
    return report


def _status(outcome: QueryOutcome) -> str:
    if outcome.error is not None:
        return f"[red]{type(outcome.error).__name__}[/]"
    if not outcome.complete:
        return "[yellow]incomplete[/]"
    return "[green]ok[/]"


def _summary_rows(report: BenchmarkReport) -> list[tuple[str, str]]:
    q1, q2 = report.query1, report.query2
    return [
        ("query1 account ids", f"{q1.count:,}"),
        ("query1 time", f"{q1.elapsed_ms:,.0f}ms"),
        ("query1 status", _status(q1)),
        ("query2 positions", f"{q2.count:,}"),
        ("query2 time", f"{q2.elapsed_ms:,.0f}ms"),
        ("query2 status", _status(q2)),
        ("difference (q2 - q1)", f"{report.difference_ms:,.0f}ms"),
        ("requests (pages)", f"{sum(e.pages for e in report.events):,}"),
    ]


def _summary_table(title: str, rows: list[tuple[str, str]]) -> Table:
    table = Table(title=title, show_header=False, border_style="dim")
    table.add_column("item", style="bold")
    table.add_column("value", justify="right", style="cyan")
    for label, value in rows:
        table.add_row(label, value)
    return table


async def run_benchmark_async(
    config: Config, es: AsyncElasticsearch | None = None
) -> list[BenchmarkReport]:
    """Run the selected strategies. A client passed in is left open."""
    if config.strategy == "both":
        strategies = list(STRATEGIES)
    elif config.strategy in STRATEGIES:
        strategies = [config.strategy]
    else:
        raise ValueError(f"unknown strategy {config.strategy!r}")

    owns_client = es is None
    es = es or build_es_client(config)

    reports: list[BenchmarkReport] = []
    try:
        with timer() as total:
            for strategy in strategies:
                reports.append(await run_strategy(es, config, strategy))
    finally:
        if owns_client:
            await es.close()

    for report in reports:
        rows = _summary_rows(report)
        console.print(_summary_table(f"{report.strategy} summary", rows))
        for label, value in rows:
            logger.info(f"{report.strategy}|{label}: {value}")
    logger.info(f"main|Total Execution Time: {total.ms:,.0f}ms")
    return reports


# ============================================================
# Public API: sync wrapper
# ============================================================
def run_benchmark(config: Config) -> list[BenchmarkReport]:
    log_file = run_log_file(config.log_dir, "benchmark")
    setup_logging(log_file=log_file)
    logger.info(f"Log -> {literal(log_file)}")
    logger.info(f"config: {literal(config)}")

    console.print(
        Panel.fit(
            f"[bold]Pagination benchmark[/] ({config.strategy}) "
            f"{BUSINESS_SYSTEM_CODE}=={literal(config.predicate_value)}",
            border_style="green",
        )
    )
    return asyncio.run(run_benchmark_async(config))
