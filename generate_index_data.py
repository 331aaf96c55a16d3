#!/usr/bin/env python3
# generate_index_data.py
"""
Synthetic financial data -> accounts-domain index + positions superindex (CLI entry point)

Run:
  ES_USERNAME=elastic ES_PASSWORD=changeme ES_URL=https://localhost:9200 \\
      python generate_index_data.py

  # small, reproducible dataset into fresh indices
  python generate_index_data.py --total_docs 100000 --seed 7 --recreate

  # large dataset
  python generate_index_data.py --total_docs 10000000 \\
      --accounts_index 1lg_benchmark-accounts-domain \\
      --superindex 1lg_benchmark_supidx_position
"""

import argparse
import os
from datetime import date
from pathlib import Path

from es_pager import GeneratorConfig, run_generator
from es_pager.config import LOG_DIR


def main():
    defaults = GeneratorConfig()
    parser = argparse.ArgumentParser(
        description="Seed the pagination benchmark indices (async bulk)"
    )
    parser.add_argument("--accounts_index", default=defaults.accounts_index)
    parser.add_argument("--superindex", default=defaults.superindex)
    parser.add_argument(
        "--recreate", action="store_true",
        help="drop and recreate both indices before loading",
    )

    # ── data shape ──
    shape = parser.add_argument_group("data shape")
    shape.add_argument("--total_docs", type=int, default=defaults.total_docs)
    shape.add_argument("--num_accounts", type=int, default=defaults.num_accounts)
    shape.add_argument("--num_positions", type=int, default=defaults.num_positions)
    shape.add_argument("--num_dates", type=int, default=defaults.num_dates)
    shape.add_argument("--num_instruments", type=int, default=defaults.num_instruments)
    shape.add_argument(
        "--num_business_systems", type=int, default=defaults.num_business_systems,
    )
    shape.add_argument(
        "--min_positions", type=int, default=defaults.min_positions_per_account,
    )
    shape.add_argument(
        "--max_positions", type=int, default=defaults.max_positions_per_account,
    )
    shape.add_argument(
        "--start_date", type=date.fromisoformat, default=defaults.start_date,
    )
    shape.add_argument("--end_date", type=date.fromisoformat, default=defaults.end_date)
    shape.add_argument("--seed", type=int, default=None)

    # ── bulk writes ──
    bulk = parser.add_argument_group("bulk writes")
    bulk.add_argument("--batch_size", type=int, default=defaults.batch_size)
    bulk.add_argument(
        "--max_concurrent_batches", type=int, default=defaults.max_concurrent_batches,
    )
    bulk.add_argument("--max_retries", type=int, default=defaults.max_retries)
    bulk.add_argument("--retry_delay", type=float, default=defaults.retry_delay)
    bulk.add_argument("--failure_log", type=Path, default=None)

    # ── connection ──
    conn = parser.add_argument_group("Elasticsearch connection")
    conn.add_argument("--es_url", default=os.environ.get("ES_URL", defaults.es_url))
    conn.add_argument("--es_nodes", nargs="+", default=None)
    conn.add_argument("--es_fingerprint", default=None)
    conn.add_argument("--es_username", default=os.environ.get("ES_USERNAME"))
    conn.add_argument("--es_password", default=os.environ.get("ES_PASSWORD"))
    conn.add_argument("--es_api_key", default=os.environ.get("ES_API_KEY"))
    conn.add_argument("--verify_certs", action="store_true")

    parser.add_argument("--log_dir", type=Path, default=LOG_DIR)

    args = parser.parse_args()
    if args.min_positions > args.max_positions:
        parser.error("--min_positions must not exceed --max_positions")

    config = GeneratorConfig(
        es_url=args.es_url,
        es_nodes=args.es_nodes,
        es_fingerprint=args.es_fingerprint,
        es_username=args.es_username,
        es_password=args.es_password,
        es_api_key=args.es_api_key,
        verify_certs=args.verify_certs,
        log_dir=args.log_dir,
        accounts_index=args.accounts_index,
        superindex=args.superindex,
        recreate=args.recreate,
        total_docs=args.total_docs,
        num_accounts=args.num_accounts,
        num_positions=args.num_positions,
        num_dates=args.num_dates,
        num_instruments=args.num_instruments,
        num_business_systems=args.num_business_systems,
        min_positions_per_account=args.min_positions,
        max_positions_per_account=args.max_positions,
        start_date=args.start_date,
        end_date=args.end_date,
        seed=args.seed,
        batch_size=args.batch_size,
        max_concurrent_batches=args.max_concurrent_batches,
        max_retries=args.max_retries,
        retry_delay=args.retry_delay,
        failure_log_path=args.failure_log,
    )
    report = run_generator(config)
    raise SystemExit(1 if report.failed_docs else 0)


if __name__ == "__main__":
    main()
