"""Query predicates + _source projection"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Sequence

from .errors import MalformedPredicateError

DEFAULT_MAX_TERMS = 65536  # index.max_terms_count


@dataclass(frozen=True)
class Predicate:
    """Single-field filter: equality (term) or membership (terms)."""

    field: str
    value: Any = None
    values: tuple[Any, ...] | None = None
    max_terms: int = DEFAULT_MAX_TERMS

    @classmethod
    def equals(cls, field: str, value: Any) -> Predicate:
        return cls(field=field, value=value)

    @classmethod
    def is_in(
        cls, field: str, values: Sequence[Any], max_terms: int = DEFAULT_MAX_TERMS
    ) -> Predicate:
        return cls(field=field, values=tuple(values), max_terms=max_terms)

    @property
    def is_membership(self) -> bool:
        return self.values is not None

    def validate(self):
        if not self.field:
            raise MalformedPredicateError("predicate field is empty")
        if self.values is None:
            if self.value is None:
                raise MalformedPredicateError(f"{self.field}: no value given")
            return
        if not self.values:
            raise MalformedPredicateError(f"{self.field} IN []: empty member list")
        if len(self.values) > self.max_terms:
            raise MalformedPredicateError(
                f"{self.field} IN [...]: {len(self.values):,} members "
                f"exceeds max_terms={self.max_terms:,}"
            )

    def to_query(self) -> dict:
        self.validate()
        if self.values is not None:
            return {"terms": {self.field: list(self.values)}}
        return {"term": {self.field: self.value}}

    def __str__(self) -> str:
        if self.values is not None:
            return f"{self.field} IN [{len(self.values):,} values]"
        return f"{self.field}=={self.value}"


def _lookup(source: dict, path: str) -> Any:
    node: Any = source
    for key in path.split("."):
        if not isinstance(node, dict) or key not in node:
            return None
        node = node[key]
    return node


def project(source: dict | None, fields: Sequence[str]) -> tuple:
    """
    Pull dotted-path fields out of a hit's _source.

        project({"Account": {"accountId": "account_1"}}, ["Account.accountId"])
        -> ("account_1",)

    Missing paths come back as None.
    """
    source = source or {}
    return tuple(_lookup(source, f) for f in fields)
