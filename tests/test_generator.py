import asyncio
import io
import json
import random
from unittest.mock import AsyncMock, MagicMock, patch

from rich.console import Console
from rich.progress import Progress

from es_pager.config import GeneratorConfig
from es_pager.generator import (
    ACCOUNTS_SCHEMA,
    SUPERINDEX_SCHEMA,
    build_records,
    build_vocabulary,
    ensure_indices,
    generate,
    iter_actions,
    iter_records,
    max_records,
    _run_generator,
)


def _config(**kwargs) -> GeneratorConfig:
    defaults = dict(
        accounts_index="acc",
        superindex="sup",
        total_docs=25,
        num_accounts=10,
        num_positions=4,
        min_positions_per_account=3,
        max_positions_per_account=3,
        batch_size=10,
        max_concurrent_batches=2,
        max_retries=2,
        retry_delay=0.0,
        seed=7,
    )
    defaults.update(kwargs)
    return GeneratorConfig(**defaults)


# ============================================================
# records
# ============================================================
def test_record_pair_shares_account_and_system():
    config = _config()
    rng = random.Random(1)
    vocab = build_vocabulary(config, rng)
    account, sup = build_records(rng, vocab, "account_3", "position_1")

    assert account == {"Account": sup["Account"]}
    assert sup["Account"]["accountId"] == "account_3"
    assert sup["Position"]["accountId"] == "account_3"
    assert sup["Position"]["positionId"] == "position_1"
    system = sup["Account"]["businessSystemCode"]
    assert system in vocab.business_systems
    assert sup["Position"]["businessSystemCode"] == system
    assert sup["Party"]["accountId"] == "account_3"
    assert set(sup) == {"Account", "Position", "Party", "Instrument"}
    assert 10 <= sup["Position"]["InstrumentPrice"]["price"] <= 1000


def test_dates_within_configured_range():
    config = _config(num_dates=50)
    vocab = build_vocabulary(config, random.Random(0))
    assert len(vocab.dates) == 50
    assert all("2020-01-01" <= d <= "2023-12-31" for d in vocab.dates)


def test_records_stop_at_total_docs():
    records = list(iter_records(_config(total_docs=7)))
    assert len(records) == 7
    assert [doc_id for doc_id, _, _ in records] == [
        "0-0", "0-1", "0-2", "1-0", "1-1", "1-2", "2-0",
    ]
    assert records[3][2]["Position"]["accountId"] == "account_1"


def test_records_stop_when_accounts_run_out():
    records = list(iter_records(_config(total_docs=1000, num_accounts=2)))
    assert len(records) == 6


def test_positions_wrap_around():
    records = list(iter_records(_config(total_docs=30, num_positions=4)))
    position_of = {r[2]["Account"]["accountId"]: r[2]["Position"]["positionId"] for r in records}
    assert position_of["account_4"] == "position_0"
    assert position_of["account_5"] == "position_1"


def test_seed_makes_runs_reproducible():
    def stable(config):
        return [
            (doc_id, acc, sup["Position"]["positionDate"], sup["Position"]["InstrumentPrice"])
            for doc_id, acc, sup in iter_records(config)
        ]

    assert stable(_config(seed=3)) == stable(_config(seed=3))
    assert stable(_config(seed=3)) != stable(_config(seed=4))


def test_actions_write_each_record_to_both_indices():
    actions = list(iter_actions(_config(total_docs=2)))
    assert [(a["_index"], a["_id"]) for a in actions] == [
        ("acc", "0-0"), ("sup", "0-0"), ("acc", "0-1"), ("sup", "0-1"),
    ]
    assert set(actions[0]["_source"]) == {"Account"}


# ============================================================
# index setup
# ============================================================
def _mock_es(exists: list[bool]) -> MagicMock:
    es = MagicMock()
    es.indices.exists = AsyncMock(side_effect=exists)
    es.indices.delete = AsyncMock()
    es.indices.create = AsyncMock()
    es.indices.refresh = AsyncMock()
    es.close = AsyncMock()
    return es


def test_ensure_indices_creates_only_missing():
    es = _mock_es([True, False])
    created = asyncio.run(ensure_indices(es, _config()))

    assert created == ["sup"]
    es.indices.delete.assert_not_awaited()
    es.indices.create.assert_awaited_once_with(
        index="sup",
        settings=SUPERINDEX_SCHEMA["settings"],
        mappings=SUPERINDEX_SCHEMA["mappings"],
    )


def test_ensure_indices_recreate_drops_first():
    es = _mock_es([True, True])
    created = asyncio.run(ensure_indices(es, _config(recreate=True)))

    assert created == ["acc", "sup"]
    assert es.indices.delete.await_count == 2
    assert es.indices.create.await_args_list[0].kwargs["mappings"] == ACCOUNTS_SCHEMA["mappings"]


def test_key_fields_are_keywords():
    props = SUPERINDEX_SCHEMA["mappings"]["properties"]
    assert props["Account"]["properties"]["businessSystemCode"] == {"type": "keyword"}
    assert props["Position"]["properties"]["accountId"] == {"type": "keyword"}


# ============================================================
# bulk load
# ============================================================
def test_generate_sends_bounded_concurrent_groups(tmp_path):
    in_flight = 0
    peak = 0
    batch_sizes = []

    async def fake_bulk(es, actions, **kwargs):
        nonlocal in_flight, peak
        in_flight += 1
        peak = max(peak, in_flight)
        batch_sizes.append(len(actions))
        await asyncio.sleep(0)
        in_flight -= 1
        return len(actions), []

    with patch("es_pager.generator.async_bulk", new=AsyncMock(side_effect=fake_bulk)):
        report = asyncio.run(generate(MagicMock(), _config(), tmp_path / "failed.jsonl"))

    assert batch_sizes == [10, 10, 10, 10, 10]
    assert peak == 2
    assert report.records == 25
    assert report.indexed == 50
    assert report.batches == 5
    assert report.failed_docs == 0
    assert report.failure_log is None
    assert not (tmp_path / "failed.jsonl").exists()


def test_failed_batch_retried_then_succeeds(tmp_path):
    bulk = AsyncMock(side_effect=[(0, [{"index": {"status": 429}}]), (10, [])])

    with patch("es_pager.generator.async_bulk", new=bulk):
        report = asyncio.run(
            generate(MagicMock(), _config(total_docs=5), tmp_path / "failed.jsonl")
        )

    assert bulk.await_count == 2
    assert report.retries == 1
    assert report.indexed == 10
    assert report.failed_docs == 0


def test_exhausted_retries_go_to_failure_log(tmp_path):
    bulk = AsyncMock(return_value=(0, [{"index": {"status": 500}}]))
    log_path = tmp_path / "failed.jsonl"

    with patch("es_pager.generator.async_bulk", new=bulk):
        report = asyncio.run(generate(MagicMock(), _config(total_docs=10), log_path))

    # 20 actions -> 2 batches x (1 try + 2 retries)
    assert bulk.await_count == 6
    assert report.retries == 4
    assert report.indexed == 0
    assert report.failed_docs == 20
    assert report.failed_batches == 2
    assert report.failure_log == log_path

    lines = [json.loads(line) for line in log_path.read_text().splitlines()]
    assert sorted(r["batch_id"] for r in lines) == [0, 1]
    assert all(r["count"] == 10 and r["error_type"] == "RuntimeError" for r in lines)
    assert lines[0]["actions"][0]["_index"] == "acc"


def test_max_records_bounded_by_accounts():
    assert max_records(_config(total_docs=1000, num_accounts=2)) == 6
    assert max_records(_config(total_docs=5)) == 5


def test_progress_completes_when_accounts_run_out(tmp_path):
    config = _config(
        total_docs=1000, num_accounts=2,
        min_positions_per_account=1, max_positions_per_account=3,
    )
    progress = Progress(console=Console(file=io.StringIO()))
    bulk = AsyncMock(side_effect=lambda es, actions, **kwargs: (len(actions), []))

    with patch("es_pager.generator.async_bulk", new=bulk), \
            patch("es_pager.generator._create_progress", return_value=progress):
        report = asyncio.run(
            _run_generator(config, tmp_path / "generator.log", es=_mock_es([True, True]))
        )

    (task,) = progress.tasks
    assert 2 <= report.records <= 6
    assert task.total == task.completed == report.records * 2
    assert task.finished
