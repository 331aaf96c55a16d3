"""
es_pager: scroll vs. point-in-time pagination benchmark for Elasticsearch

Benchmark (both strategies):
    from es_pager import Config, run_benchmark
    run_benchmark(Config(es_username="elastic", es_password="changeme"))

Seed the two indices:
    from es_pager import GeneratorConfig, run_generator
    run_generator(GeneratorConfig(total_docs=100_000, seed=7))

Pagination core (async, client injected):
    from es_pager import FanOutBatcher, Predicate, make_paginator
    paginator = make_paginator("pit", es, page_size=10000, keep_alive="2m")
    ids = (await paginator.fetch(index, Predicate.equals("Account.businessSystemCode", "system_163"),
                                 ["Account.accountId"])).column(0)
    positions = await FanOutBatcher(paginator, chunk_size=1000).fetch(
        ids, "positions", "Position.accountId", ["Position.positionId"])
"""

from .benchmark import BenchmarkReport, run_benchmark, run_benchmark_async
from .client import build_es_client
from .config import Config, GeneratorConfig
from .errors import (
    CursorExpiredError,
    FanOutError,
    MalformedPredicateError,
    PaginationError,
    QueryRejectedError,
    TransportFailure,
)
from .fanout import FanOutBatcher, FanOutResult
from .generator import run_generator
from .log import get_logger, setup_logging
from .paginator import (
    FetchResult,
    Paginator,
    PointInTimePaginator,
    ScrollPaginator,
    make_paginator,
)
from .predicate import Predicate
from .stats import FetchEvent

__all__ = [
    "Config", "GeneratorConfig", "build_es_client",
    "Predicate", "Paginator", "ScrollPaginator", "PointInTimePaginator",
    "make_paginator", "FetchResult", "FetchEvent",
    "FanOutBatcher", "FanOutResult",
    "PaginationError", "TransportFailure", "CursorExpiredError",
    "QueryRejectedError", "MalformedPredicateError", "FanOutError",
    "run_benchmark", "run_benchmark_async", "BenchmarkReport",
    "run_generator",
    "setup_logging", "get_logger",
]
