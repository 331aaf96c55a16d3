#!/usr/bin/env python3
# run_benchmark.py
"""
Scroll vs. point-in-time pagination benchmark (CLI entry point)

Prerequisites:
  Both indices seeded:  python generate_index_data.py

Run:
  # both strategies against the small dataset
  ES_USERNAME=elastic ES_PASSWORD=changeme python run_benchmark.py

  # large dataset, PIT only, smaller IN chunks
  python run_benchmark.py --strategy pit --chunk_size 1000 \\
      --accounts_index 1lg_benchmark-accounts-domain \\
      --superindex 1lg_benchmark_supidx_position \\
      --predicate system_822

  # keep going past failed chunks
  python run_benchmark.py --chunk_failure_policy skip
"""

import argparse
import os
from pathlib import Path

from es_pager import Config, run_benchmark
from es_pager.config import LOG_DIR


def main():
    defaults = Config()
    parser = argparse.ArgumentParser(
        description="Elasticsearch scroll vs. PIT/search_after benchmark"
    )
    parser.add_argument(
        "--strategy", choices=["scroll", "pit", "both"], default=defaults.strategy,
    )
    parser.add_argument(
        "--predicate", default=defaults.predicate_value,
        help="Account.businessSystemCode value, e.g. system_514",
    )
    parser.add_argument("--accounts_index", default=defaults.accounts_index)
    parser.add_argument("--superindex", default=defaults.superindex)

    # ── pagination ──
    paging = parser.add_argument_group("pagination")
    paging.add_argument("--page_size", type=int, default=defaults.page_size)
    paging.add_argument(
        "--max_page_size", type=int, default=defaults.max_page_size,
        help="per-request ceiling (index.max_result_window)",
    )
    paging.add_argument("--keep_alive", default=defaults.keep_alive)
    paging.add_argument(
        "--max_pages", type=int, default=None,
        help="stop each query after N pages (default: until an empty page)",
    )
    paging.add_argument("--chunk_size", type=int, default=defaults.chunk_size)
    paging.add_argument(
        "--max_terms", type=int, default=defaults.max_terms,
        help="terms-query member ceiling (index.max_terms_count)",
    )
    paging.add_argument(
        "--chunk_failure_policy", choices=["abort", "skip"],
        default=defaults.chunk_failure_policy,
    )
    paging.add_argument(
        "--keep_partial", action="store_true",
        help="report rows fetched before a failure instead of discarding them",
    )

    # ── connection ──
    conn = parser.add_argument_group("Elasticsearch connection")
    conn.add_argument("--es_url", default=os.environ.get("ES_URL", defaults.es_url))
    conn.add_argument("--es_nodes", nargs="+", default=None)
    conn.add_argument("--es_fingerprint", default=None)
    conn.add_argument("--es_username", default=os.environ.get("ES_USERNAME"))
    conn.add_argument("--es_password", default=os.environ.get("ES_PASSWORD"))
    conn.add_argument("--es_api_key", default=os.environ.get("ES_API_KEY"))
    conn.add_argument(
        "--verify_certs", action="store_true",
        help="verify TLS certificates (off by default for self-signed local nodes)",
    )
    conn.add_argument("--request_timeout", type=float, default=defaults.request_timeout)

    parser.add_argument("--log_dir", type=Path, default=LOG_DIR)

    args = parser.parse_args()

    config = Config(
        es_url=args.es_url,
        es_nodes=args.es_nodes,
        es_fingerprint=args.es_fingerprint,
        es_username=args.es_username,
        es_password=args.es_password,
        es_api_key=args.es_api_key,
        verify_certs=args.verify_certs,
        request_timeout=args.request_timeout,
        log_dir=args.log_dir,
        accounts_index=args.accounts_index,
        superindex=args.superindex,
        predicate_value=args.predicate,
        strategy=args.strategy,
        page_size=args.page_size,
        max_page_size=args.max_page_size,
        keep_alive=args.keep_alive,
        max_pages=args.max_pages,
        chunk_size=args.chunk_size,
        max_terms=args.max_terms,
        chunk_failure_policy=args.chunk_failure_policy,
        keep_partial=args.keep_partial,
    )
    reports = run_benchmark(config)
    failed = any(not (r.query1.ok and r.query2.ok) for r in reports)
    raise SystemExit(1 if failed else 0)


if __name__ == "__main__":
    main()
