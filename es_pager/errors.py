"""Pagination failure taxonomy

    TransportFailure       connection refused / timeout / transport error / 429 / 5xx
    CursorExpiredError     scroll or point-in-time context gone (keep-alive elapsed)
    QueryRejectedError     400 / unknown index / other API rejection
    MalformedPredicateError  rejected locally, before any request

An empty page is not an error: it is the normal end of pagination.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from elasticsearch import (
    ApiError,
    BadRequestError,
    ConnectionError as ESConnectionError,
    ConnectionTimeout,
    NotFoundError,
    TransportError,
)

if TYPE_CHECKING:
    from .paginator import FetchResult

ES_ERRORS = (ApiError, TransportError)

_EXPIRED_MARKER = "search_context_missing"


class PaginationError(Exception):
    """A query aborted mid-pagination.

    pages / docs are the progress counters at the time of failure.
    partial is only set when the paginator runs with keep_partial=True.
    """

    def __init__(
        self,
        message: str,
        *,
        phase: str = "",
        pages: int = 0,
        docs: int = 0,
        partial: FetchResult | None = None,
    ):
        super().__init__(message)
        self.phase = phase
        self.pages = pages
        self.docs = docs
        self.partial = partial

    def __str__(self) -> str:
        base = super().__str__()
        if self.phase:
            return f"{self.phase}|{base} (pages={self.pages}, docs={self.docs})"
        return base


class TransportFailure(PaginationError):
    pass


class CursorExpiredError(PaginationError):
    pass


class QueryRejectedError(PaginationError):
    pass


class MalformedPredicateError(QueryRejectedError):
    pass


class FanOutError(PaginationError):
    """A fan-out aborted on one chunk. cause holds the chunk's own error."""

    def __init__(self, message: str, *, chunk: int, cause: PaginationError, **kwargs):
        super().__init__(message, **kwargs)
        self.chunk = chunk
        self.cause = cause


def _api_error_types(exc: ApiError) -> list[str]:
    """Top-level error type plus root-cause types from the response body."""
    types = [str(getattr(exc, "message", "") or "")]
    body = getattr(exc, "body", None)
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict):
            types.append(str(error.get("type", "")))
            for cause in error.get("root_cause") or []:
                if isinstance(cause, dict):
                    types.append(str(cause.get("type", "")))
    return types


def classify_error(
    exc: Exception,
    *,
    phase: str,
    pages: int = 0,
    docs: int = 0,
    advancing: bool = False,
) -> PaginationError:
    """Map an elasticsearch exception onto the pagination taxonomy.

    advancing=True means the request continued an existing cursor, so a 404
    there is an expired cursor rather than a missing index.
    """
    counters = {"phase": phase, "pages": pages, "docs": docs}

    if isinstance(exc, (ESConnectionError, ConnectionTimeout)):
        return TransportFailure(f"transport failure: {exc}", **counters)

    if isinstance(exc, ApiError):
        error_types = _api_error_types(exc)
        if any(_EXPIRED_MARKER in t for t in error_types):
            return CursorExpiredError(f"cursor expired: {exc}", **counters)
        status = getattr(exc, "status", None)
        if status == 429 or (isinstance(status, int) and status >= 500):
            # overloaded or unavailable node
            return TransportFailure(f"server unavailable ({status}): {exc}", **counters)
        if isinstance(exc, NotFoundError):
            missing_index = any("index_not_found" in t for t in error_types)
            if advancing or not missing_index:
                return CursorExpiredError(f"cursor expired: {exc}", **counters)
            return QueryRejectedError(f"query rejected: {exc}", **counters)
        if isinstance(exc, BadRequestError):
            return QueryRejectedError(f"query rejected: {exc}", **counters)
        return QueryRejectedError(f"api error: {exc}", **counters)

    if isinstance(exc, TransportError):
        return TransportFailure(f"transport failure: {exc}", **counters)

    raise TypeError(f"not an elasticsearch error: {type(exc).__name__}")
