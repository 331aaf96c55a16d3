"""Benchmark / generator settings"""

from dataclasses import dataclass, field
from datetime import date
from pathlib import Path

LOG_DIR = Path(__file__).parent.parent / "logs"


@dataclass
class ConnectionConfig:
    # Elasticsearch connection
    es_url: str = "https://localhost:9200"
    es_nodes: list[str] | None = None       # cluster node list (overrides es_url)
    es_fingerprint: str | None = None       # TLS certificate SHA-256 fingerprint
    es_username: str | None = None          # Basic Auth
    es_password: str | None = field(default=None, repr=False)
    es_api_key: str | None = field(default=None, repr=False)  # takes precedence over basic auth
    verify_certs: bool = False              # local benchmark nodes use self-signed certs
    request_timeout: float = 120.0

    # logging
    log_dir: Path = field(default_factory=lambda: LOG_DIR)


@dataclass
class Config(ConnectionConfig):
    # indices
    accounts_index: str = "2sml_benchmark-accounts-domain"
    superindex: str = "2sml_benchmark_supidx_position"

    # benchmark
    predicate_value: str = "system_163"     # Account.businessSystemCode
    strategy: str = "both"                  # scroll | pit | both

    # pagination
    page_size: int = 10000
    max_page_size: int = 10000              # index.max_result_window
    keep_alive: str = "2m"
    max_pages: int | None = None            # None = until an empty page

    # fan-out
    chunk_size: int = 10000
    max_terms: int = 65536                  # index.max_terms_count
    chunk_failure_policy: str = "abort"     # abort | skip
    keep_partial: bool = False              # attach partial rows to raised errors


@dataclass
class GeneratorConfig(ConnectionConfig):
    accounts_index: str = "2sml_benchmark-accounts-domain"
    superindex: str = "2sml_benchmark_supidx_position"
    recreate: bool = False                  # drop + recreate both indices first

    # data shape
    total_docs: int = 1_000_000
    num_accounts: int = 10_000
    num_positions: int = 15_000
    num_dates: int = 365
    num_instruments: int = 100
    num_business_systems: int = 1000
    num_codes: int = 100                    # ccy / subledger / class / currency / type / status
    min_positions_per_account: int = 2000
    max_positions_per_account: int = 5000
    start_date: date = date(2020, 1, 1)
    end_date: date = date(2023, 12, 31)
    seed: int | None = None

    # bulk writes
    batch_size: int = 2000                  # docs per bulk request
    max_concurrent_batches: int = 5

    # retry / failure handling
    max_retries: int = 3                    # 0 = no retry
    retry_delay: float = 1.0                # first backoff, doubled after each attempt
    failure_log_path: Path | None = None    # None = next to the run log
