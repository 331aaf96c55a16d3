"""In-memory AsyncElasticsearch stand-in for the pagination tests"""

from __future__ import annotations

import itertools
import logging
from collections import Counter

import pytest
from elastic_transport import ApiResponseMeta, HttpHeaders, NodeConfig
from elasticsearch import ApiError, NotFoundError

from es_pager.log import setup_logging


def api_error(cls: type[ApiError] = NotFoundError, status: int = 404,
              error_type: str = "search_context_missing_exception",
              reason: str | None = None) -> ApiError:
    reason = reason or error_type
    meta = ApiResponseMeta(
        status=status,
        http_version="1.1",
        headers=HttpHeaders(),
        duration=0.0,
        node=NodeConfig("http", "localhost", 9200),
    )
    body = {
        "error": {
            "type": error_type,
            "reason": reason,
            "root_cause": [{"type": error_type, "reason": reason}],
        },
        "status": status,
    }
    return cls(message=error_type, meta=meta, body=body)


def _lookup(doc: dict, path: str):
    node = doc
    for key in path.split("."):
        if not isinstance(node, dict) or key not in node:
            return None
        node = node[key]
    return node


def _matcher(query: dict):
    if "term" in query:
        (field, value), = query["term"].items()
        return lambda doc: _lookup(doc, field) == value
    if "terms" in query:
        (field, values), = query["terms"].items()
        wanted = set(values)
        return lambda doc: _lookup(doc, field) in wanted
    raise AssertionError(f"unsupported query {query}")


def _project(doc: dict, fields) -> dict:
    out: dict = {}
    for path in fields or []:
        value = _lookup(doc, path)
        if value is None:
            continue
        node = out
        keys = path.split(".")
        for key in keys[:-1]:
            node = node.setdefault(key, {})
        node[keys[-1]] = value
    return out


class FakeElasticsearch:
    """
    Supports the calls the paginators make: search (term / terms, scroll,
    pit + search_after), scroll, clear_scroll, open/close_point_in_time.

    fail_on("scroll", 2, exc) raises exc on the 2nd scroll call.
    """

    def __init__(self, indices: dict[str, list[dict]] | None = None):
        self.indices = {name: list(docs) for name, docs in (indices or {}).items()}
        self.calls: list[tuple[str, dict]] = []
        self.counts: Counter = Counter()
        self._failures: dict[tuple[str, int], Exception] = {}
        self._scrolls: dict[str, list[tuple[int, dict]]] = {}
        self._pits: dict[str, str] = {}
        self._ids = itertools.count(1)
        self.rotate_pit_ids = False
        self.closed = False

    # ── test controls ──
    def fail_on(self, method: str, call_number: int, exc: Exception):
        self._failures[(method, call_number)] = exc

    def calls_to(self, method: str) -> list[dict]:
        return [kwargs for name, kwargs in self.calls if name == method]

    @property
    def open_scrolls(self) -> int:
        return len(self._scrolls)

    @property
    def open_pits(self) -> int:
        return len(self._pits)

    def _record(self, method: str, kwargs: dict):
        self.calls.append((method, kwargs))
        self.counts[method] += 1
        exc = self._failures.get((method, self.counts[method]))
        if exc is not None:
            raise exc

    # ── API ──
    async def search(self, *, index=None, query=None, source=None, size=10,
                     scroll=None, sort=None, pit=None, search_after=None, **_):
        self._record("search", {
            "index": index, "query": query, "source": source, "size": size,
            "scroll": scroll, "sort": sort, "pit": pit, "search_after": search_after,
        })
        if pit is not None:
            if pit["id"] not in self._pits:
                raise api_error()
            index = self._pits[pit["id"]]
        match = _matcher(query)
        matches = [(pos, doc) for pos, doc in enumerate(self.indices.get(index, [])) if match(doc)]
        total = len(matches)
        if search_after is not None:
            matches = [(pos, doc) for pos, doc in matches if pos > search_after[0]]

        page, rest = matches[:size], matches[size:]
        resp = {
            "hits": {
                "total": {"value": total, "relation": "eq"},
                "hits": [
                    {"_index": index, "_id": str(pos), "_source": _project(doc, source), "sort": [pos]}
                    for pos, doc in page
                ],
            }
        }
        if scroll is not None:
            scroll_id = f"scroll-{next(self._ids)}"
            self._scrolls[scroll_id] = [(pos, _project(doc, source)) for pos, doc in rest]
            resp["_scroll_id"] = scroll_id
        if pit is not None:
            pit_id = pit["id"]
            if self.rotate_pit_ids:
                new_id = f"pit-{next(self._ids)}"
                self._pits[new_id] = self._pits.pop(pit_id)
                pit_id = new_id
            resp["pit_id"] = pit_id
        return resp

    async def scroll(self, *, scroll_id, scroll=None, **_):
        self._record("scroll", {"scroll_id": scroll_id, "scroll": scroll})
        if scroll_id not in self._scrolls:
            raise api_error()
        remaining = self._scrolls[scroll_id]
        size = self.calls_to("search")[-1]["size"] if self.calls_to("search") else 10
        page, self._scrolls[scroll_id] = remaining[:size], remaining[size:]
        return {
            "_scroll_id": scroll_id,
            "hits": {
                "total": {"value": len(remaining), "relation": "eq"},
                "hits": [{"_id": str(pos), "_source": src} for pos, src in page],
            },
        }

    async def clear_scroll(self, *, scroll_id, **_):
        self._record("clear_scroll", {"scroll_id": scroll_id})
        self._scrolls.pop(scroll_id, None)
        return {"succeeded": True, "num_freed": 1}

    async def open_point_in_time(self, *, index, keep_alive, **_):
        self._record("open_point_in_time", {"index": index, "keep_alive": keep_alive})
        if index not in self.indices:
            raise api_error(NotFoundError, 404, "index_not_found_exception")
        pit_id = f"pit-{next(self._ids)}"
        self._pits[pit_id] = index
        return {"id": pit_id}

    async def close_point_in_time(self, *, id, **_):
        self._record("close_point_in_time", {"id": id})
        self._pits.pop(id, None)
        return {"succeeded": True, "num_freed": 1}

    async def close(self):
        self.closed = True


def make_docs(n: int, field: str = "code", value: str = "x") -> list[dict]:
    return [{field: value, "id": f"doc_{i}"} for i in range(n)]


def superindex_docs(positions_per_account: dict[str, int], system: str = "system_1") -> list[dict]:
    docs = []
    for account_id, n in positions_per_account.items():
        for j in range(n):
            docs.append({
                "Account": {"accountId": account_id, "businessSystemCode": system},
                "Position": {"accountId": account_id, "positionId": f"{account_id}/p{j}"},
            })
    return docs


@pytest.fixture
def fake_es():
    return FakeElasticsearch()


@pytest.fixture
def run_log(tmp_path):
    """Rich console + plain file logging, as the CLI sets it up. Yields the log file."""
    log_file = tmp_path / "run.log"
    logger = setup_logging(log_file=log_file)
    yield log_file
    for handler in list(logger.handlers):
        if isinstance(handler, logging.FileHandler):
            logger.removeHandler(handler)
            handler.close()
