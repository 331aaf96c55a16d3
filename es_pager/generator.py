"""
Synthetic financial data for the pagination benchmark

Writes two indices from the same record stream:
    accounts index:  {"Account": {...}}                        (one per position)
    superindex:      {"Account", "Position", "Party", "Instrument"}

Each account gets min..max positions; generation stops at total_docs pairs.

Bulk writes: batch_size docs per request, up to max_concurrent_batches
requests in flight, and each group is awaited before the next one starts.
Failed batches are retried with exponential backoff, then written to a JSONL
failure log for manual reprocessing. Documents carry deterministic ids, so a
retried batch overwrites instead of duplicating.
"""

from __future__ import annotations

import asyncio
import json
import random
import time
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from typing import Iterator

from elasticsearch import AsyncElasticsearch
from elasticsearch.helpers import async_bulk
from rich.console import Console
from rich.panel import Panel
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeElapsedColumn,
)
from rich.table import Table

from .client import build_es_client
from .config import GeneratorConfig
from .data import stream_batches
from .errors import ES_ERRORS
from .log import get_logger, literal, run_log_file, setup_logging
from .timer import timer

console = Console()
logger = get_logger("generator")

_STRINGS_AS_KEYWORDS = [
    {
        "strings_as_keywords": {
            "match_mapping_type": "string",
            "mapping": {"type": "keyword"},
        }
    }
]

_KEYWORD = {"type": "keyword"}

_ACCOUNT_MAPPING = {
    "properties": {
        "accountId": _KEYWORD,
        "businessSystemCode": _KEYWORD,
        "accountType": _KEYWORD,
        "status": _KEYWORD,
    }
}

ACCOUNTS_SCHEMA = {
    "settings": {"number_of_shards": 1, "number_of_replicas": 0},
    "mappings": {
        "dynamic_templates": _STRINGS_AS_KEYWORDS,
        "properties": {"Account": _ACCOUNT_MAPPING},
    },
}

SUPERINDEX_SCHEMA = {
    "settings": {"number_of_shards": 1, "number_of_replicas": 0},
    "mappings": {
        "dynamic_templates": _STRINGS_AS_KEYWORDS,
        "properties": {
            "Account": _ACCOUNT_MAPPING,
            "Position": {
                "properties": {
                    "accountId": _KEYWORD,
                    "positionId": _KEYWORD,
                    "businessSystemCode": _KEYWORD,
                    "positionDate": {"type": "date"},
                    "instrumentId": _KEYWORD,
                }
            },
        },
    },
}


# ============================================================
# vocabularies + records
# ============================================================
@dataclass
class Vocabulary:
    accounts: list[str]
    positions: list[str]
    business_systems: list[str]
    dates: list[str]
    instruments: list[str]
    position_ccys: list[str]
    subledger_codes: list[str]
    classification_levels: list[str]
    currencies: list[str]
    account_types: list[str]
    statuses: list[str]


def _random_date(rng: random.Random, start: date, end: date) -> str:
    span = (end - start).days
    return (start + timedelta(days=rng.randint(0, span))).isoformat()


def build_vocabulary(config: GeneratorConfig, rng: random.Random) -> Vocabulary:
    codes = range(config.num_codes)
    return Vocabulary(
        accounts=[f"account_{i}" for i in range(config.num_accounts)],
        positions=[f"position_{i}" for i in range(config.num_positions)],
        business_systems=[f"system_{i}" for i in range(config.num_business_systems)],
        dates=[
            _random_date(rng, config.start_date, config.end_date)
            for _ in range(config.num_dates)
        ],
        instruments=[f"instrument_{i}" for i in range(config.num_instruments)],
        position_ccys=[f"ccy_{i}" for i in codes],
        subledger_codes=[f"subledger_{i}" for i in codes],
        classification_levels=[f"class_{i}" for i in codes],
        currencies=[f"currency_{i}" for i in codes],
        account_types=[f"type_{i}" for i in codes],
        statuses=[f"status_{i}" for i in codes],
    )


def build_records(
    rng: random.Random, vocab: Vocabulary, account_id: str, position_id: str
) -> tuple[dict, dict]:
    """One (accounts-index record, superindex record) pair."""
    instrument = rng.choice(vocab.instruments)
    day = rng.choice(vocab.dates)
    system = rng.choice(vocab.business_systems)
    classes = vocab.classification_levels

    account = {
        "accountId": account_id,
        "businessSystemCode": system,
        "accountType": rng.choice(vocab.account_types),
        "status": rng.choice(vocab.statuses),
    }
    superindex_record = {
        "Account": account,
        "Position": {
            "accountId": account_id,
            "positionId": position_id,
            "businessSystemCode": system,
            "positionDate": day,
            "instrumentId": instrument,
            "positionCcy": rng.choice(vocab.position_ccys),
            "subledgerCode": rng.choice(vocab.subledger_codes),
            "Instrument": {
                "instrumentId": instrument,
                "businessSystemCode": system,
            },
            "InstrumentClassifications": {
                "instrumentId": instrument,
                "businessSystemCode": system,
                "clasificationLevel1": rng.choice(classes),
                "clasificationLevel2": rng.choice(classes),
                "clasificationLevel3": rng.choice(classes),
            },
            "InstrumentPrice": {
                "instrumentId": instrument,
                "businessSystemCode": system,
                "date": day,
                "currency": rng.choice(vocab.currencies),
                "price": round(rng.random() * 990 + 10, 2),
            },
            "Taxlot": {
                "accountId": account_id,
                "instrumentCd": instrument,
                "businessSystemCode": system,
                "postedDate": day,
            },
            "Transaction": {
                "accountId": account_id,
                "instrumentCd": instrument,
                "businessSystemCode": system,
                "transactionTimeStamp": datetime.now(timezone.utc).isoformat(),
            },
        },
        "Party": {
            "accountId": account_id,
            "businessSystemCode": system,
            "status": rng.choice(vocab.statuses),
        },
        "Instrument": {
            "instrumentId": instrument,
            "businessSystemCode": system,
            "clasificationLevel1": rng.choice(classes),
            "clasificationLevel2": rng.choice(classes),
            "clasificationLevel3": rng.choice(classes),
        },
    }
    return {"Account": account}, superindex_record


def iter_records(
    config: GeneratorConfig, rng: random.Random | None = None
) -> Iterator[tuple[str, dict, dict]]:
    """Yields (doc_id, account_record, superindex_record) up to total_docs."""
    rng = rng or random.Random(config.seed)
    vocab = build_vocabulary(config, rng)
    produced = 0

    for i, account_id in enumerate(vocab.accounts):
        position_id = vocab.positions[i % len(vocab.positions)]
        n_positions = rng.randint(
            config.min_positions_per_account, config.max_positions_per_account
        )
        for j in range(n_positions):
            if produced >= config.total_docs:
                return
            account, superindex_record = build_records(rng, vocab, account_id, position_id)
            yield f"{i}-{j}", account, superindex_record
            produced += 1


def max_records(config: GeneratorConfig) -> int:
    """Upper bound on the record pairs iter_records can yield."""
    return min(config.total_docs, config.num_accounts * config.max_positions_per_account)


def iter_actions(
    config: GeneratorConfig, rng: random.Random | None = None
) -> Iterator[dict]:
    """async_bulk actions: every record pair becomes one doc in each index."""
    for doc_id, account, superindex_record in iter_records(config, rng):
        yield {"_index": config.accounts_index, "_id": doc_id, "_source": account}
        yield {"_index": config.superindex, "_id": doc_id, "_source": superindex_record}


# ============================================================
# index setup
# ============================================================
async def ensure_indices(es: AsyncElasticsearch, config: GeneratorConfig) -> list[str]:
    """Create missing indices (drop them first when config.recreate). Returns created names."""
    created = []
    for name, schema in (
        (config.accounts_index, ACCOUNTS_SCHEMA),
        (config.superindex, SUPERINDEX_SCHEMA),
    ):
        exists = await es.indices.exists(index=name)
        if exists and config.recreate:
            await es.indices.delete(index=name)
            exists = False
        if not exists:
            await es.indices.create(
                index=name,
                settings=schema["settings"],
                mappings=schema["mappings"],
            )
            created.append(name)
    return created


# ============================================================
# bulk writes: retry + failure log
# ============================================================
class _GeneratorStats:
    def __init__(self, progress: Progress | None = None, task_id=None):
        self.indexed = 0
        self.bulk_ms = 0.0
        self.batches = 0
        self.retries = 0
        self.failed_docs = 0
        self.failed_batches = 0
        self._start = time.perf_counter()
        self._progress = progress
        self._task_id = task_id

    def update(self, count: int, bulk_ms: float):
        self.indexed += count
        self.bulk_ms += bulk_ms
        self.batches += 1
        if self._progress is not None:
            elapsed = time.perf_counter() - self._start
            rps = self.indexed / elapsed if elapsed > 0 else 0
            self._progress.update(self._task_id, advance=count, throughput=f"{rps:,.0f} docs/s")

    def record_retry(self):
        self.retries += 1

    def record_failure(self, doc_count: int):
        self.failed_docs += doc_count
        self.failed_batches += 1
        if self._progress is not None:
            self._progress.update(self._task_id, advance=doc_count)

    @property
    def wall_sec(self) -> float:
        return time.perf_counter() - self._start


class _FailureLog:
    """Failed batches as JSONL, one line per batch."""

    def __init__(self, path: Path):
        self.path = path
        self._lock = asyncio.Lock()
        self._count = 0

    async def write(self, batch_id: int, actions: list[dict], error: Exception):
        record = {
            "batch_id": batch_id,
            "count": len(actions),
            "error_type": type(error).__name__,
            "error_message": str(error),
            "ts": time.strftime("%Y-%m-%dT%H:%M:%S"),
            "actions": actions,
        }
        async with self._lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(json.dumps(record, ensure_ascii=False) + "\n")
            self._count += 1

    @property
    def count(self) -> int:
        return self._count


async def _bulk_write(es: AsyncElasticsearch, actions: list[dict]) -> int:
    success, errors = await async_bulk(
        es, actions, chunk_size=len(actions), raise_on_error=False
    )
    if errors:
        raise RuntimeError(f"Bulk insert errors: {len(errors)} failures")
    return success


async def _send_batch(
    es: AsyncElasticsearch,
    batch_id: int,
    actions: list[dict],
    config: GeneratorConfig,
    stats: _GeneratorStats,
    failure_log: _FailureLog,
):
    """bulk write + retry (exponential backoff) + failure log on final failure."""
    last_error: Exception | None = None

    for attempt in range(1, config.max_retries + 2):  # 1 = first try
        try:
            with timer() as t:
                await _bulk_write(es, actions)
            stats.update(len(actions), t.ms)
            return
        except (RuntimeError, *ES_ERRORS) as e:
            last_error = e
            if attempt > config.max_retries:
                break
            delay = config.retry_delay * (2 ** (attempt - 1))
            stats.record_retry()
            logger.warning(
                f"Batch {batch_id} failed (attempt {attempt}/{config.max_retries + 1}), "
                f"retrying in {delay:.1f}s: {literal(e)}"
            )
            await asyncio.sleep(delay)

    logger.error(
        f"Batch {batch_id} failed for good ({len(actions):,} docs, "
        f"{config.max_retries + 1} attempts): {literal(last_error)}"
    )
    stats.record_failure(len(actions))
    await failure_log.write(batch_id, actions, last_error)


@dataclass
class GeneratorReport:
    records: int            # account/superindex record pairs generated
    indexed: int            # docs acknowledged across both indices
    failed_docs: int
    failed_batches: int
    retries: int
    batches: int
    wall_sec: float
    failure_log: Path | None


async def generate(
    es: AsyncElasticsearch,
    config: GeneratorConfig,
    failure_log_path: Path,
    progress: Progress | None = None,
    task_id=None,
) -> GeneratorReport:
    """Stream records into both indices in bounded concurrent groups."""
    stats = _GeneratorStats(progress, task_id)
    failure_log = _FailureLog(failure_log_path)
    records = 0

    def counted_actions():
        nonlocal records
        for action in iter_actions(config):
            if action["_index"] == config.superindex:
                records += 1
            yield action

    group: list = []
    for batch_id, batch in enumerate(stream_batches(counted_actions(), config.batch_size)):
        group.append(_send_batch(es, batch_id, batch, config, stats, failure_log))
        if len(group) >= config.max_concurrent_batches:
            await asyncio.gather(*group)
            group = []
    if group:
        await asyncio.gather(*group)

    return GeneratorReport(
        records=records,
        indexed=stats.indexed,
        failed_docs=stats.failed_docs,
        failed_batches=stats.failed_batches,
        retries=stats.retries,
        batches=stats.batches + stats.failed_batches,
        wall_sec=stats.wall_sec,
        failure_log=failure_log.path if failure_log.count else None,
    )


def _create_progress() -> Progress:
    return Progress(
        SpinnerColumn(),
        "[progress.description]{task.description}",
        BarColumn(bar_width=30),
        MofNCompleteColumn(),
        TextColumn("•"),
        TextColumn("[green]{task.fields[throughput]}[/]"),
        TimeElapsedColumn(),
        console=console,
        transient=False,
    )


def _summary_table(rows: list[tuple[str, str]]) -> Table:
    table = Table(title="Generator summary", show_header=False, border_style="dim")
    table.add_column("item", style="bold")
    table.add_column("value", justify="right", style="cyan")
    for label, value in rows:
        table.add_row(label, value)
    return table


async def _run_generator(
    config: GeneratorConfig, log_file: Path, es: AsyncElasticsearch | None = None
) -> GeneratorReport:
    owns_client = es is None
    es = es or build_es_client(config)
    failure_log_path = config.failure_log_path or log_file.with_suffix(".failures.jsonl")

    try:
        logger.info(
            f"[1/3] indices: {literal(config.accounts_index)}, {literal(config.superindex)}"
        )
        created = await ensure_indices(es, config)
        logger.info(f"created: {literal(created or 'none (kept existing)')}")

        logger.info(
            f"[2/3] bulk load (total_docs={config.total_docs:,}, batch={config.batch_size:,}, "
            f"concurrency={config.max_concurrent_batches}, retries={config.max_retries})"
        )
        progress = _create_progress()
        with progress:
            task_id = progress.add_task(
                "Indexing", total=max_records(config) * 2, throughput="--"
            )
            report = await generate(es, config, failure_log_path, progress, task_id)
            # accounts may run out before max_records
            progress.update(task_id, total=report.records * 2)

        logger.info("[3/3] refresh")
        await es.indices.refresh(index=f"{config.accounts_index},{config.superindex}")
    finally:
        if owns_client:
            await es.close()

    rows = [
        ("record pairs", f"{report.records:,}"),
        ("docs indexed", f"{report.indexed:,}"),
        ("bulk requests", f"{report.batches:,}"),
        ("Wall time", f"{report.wall_sec:.1f}s"),
    ]
    if report.retries:
        rows.append(("retries", f"{report.retries}"))
    if report.failed_docs:
        rows.append(("failed docs", f"[red]{report.failed_docs:,} ({report.failed_batches} batches)[/]"))
        rows.append(("failure log", literal(report.failure_log)))
    console.print(_summary_table(rows))
    for label, value in rows:
        logger.info(f"{label}: {value}")
    logger.info(f"Total documents inserted: {report.records:,}")
    return report


def run_generator(config: GeneratorConfig) -> GeneratorReport:
    log_file = run_log_file(config.log_dir, "generator")
    setup_logging(log_file=log_file)
    logger.info(f"Log -> {literal(log_file)}")
    logger.info(f"config: {literal(config)}")
    console.print(
        Panel.fit(
            "[bold]Data generator[/] accounts-domain + positions superindex",
            border_style="green",
        )
    )
    return asyncio.run(_run_generator(config, log_file))
