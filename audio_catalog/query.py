"""
Query language for the local library.

Terms are whitespace separated:

    keyword                 full-text search
    artist:beatles          field substring
    title:=Help!            exact match
    genre::^rock.*          glob pattern (a small regex subset is translated)
    year:1960..1969         inclusive range, either side optional
    added:-2w               added within the last 2 weeks (d, w, m, y)
    ^genre:jazz             negation
    year+ / year-           sort ascending / descending

A trailing + or - makes a sort term only for a bare field name: `title:a-`
filters on the value "a-" and `^year-` is a negated full-text word. Checking
the suffix before anything else would read both as sorts on a field named
"title:a" or "^year", which no store could honour.

`parse` turns text into terms, `compile_terms` lowers them into clauses and
sort directives. Operands stay separate from field names and operators; the
store binds them as values and checks field names against its schema.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from enum import Enum
from typing import List, Optional, Tuple, Union

logger = logging.getLogger(__name__)

DATE_ADDED_FIELD = "added"
DEFAULT_SORT: Tuple[Tuple[str, bool], ...] = (
    ("artist", True),
    ("album", True),
    ("disc", True),
    ("track", True),
)
RELATIVE_UNITS = {"d": 1, "w": 7, "m": 30, "y": 365}
RELATIVE_DATE_PATTERN = re.compile(r"^-(?P<count>\d+)(?P<unit>[dwmy])$")


@dataclass(frozen=True, slots=True)
class Substring:
    value: str


@dataclass(frozen=True, slots=True)
class Exact:
    value: str


@dataclass(frozen=True, slots=True)
class Pattern:
    value: str

    @property
    def glob(self) -> str:
        return regex_to_glob(self.value)


@dataclass(frozen=True, slots=True)
class Range:
    start: Optional[str] = None
    end: Optional[str] = None


@dataclass(frozen=True, slots=True)
class RelativeDate:
    since: date


FieldOperation = Union[Substring, Exact, Pattern, Range, RelativeDate]


@dataclass(frozen=True, slots=True)
class FullText:
    text: str
    negated: bool = False


@dataclass(frozen=True, slots=True)
class FieldTerm:
    name: str
    operation: FieldOperation
    negated: bool = False


@dataclass(frozen=True, slots=True)
class SortTerm:
    field: str
    ascending: bool = True


QueryTerm = Union[FullText, FieldTerm, SortTerm]


class Operator(str, Enum):
    FULLTEXT = "fulltext"
    SUBSTRING = "substring"
    EXACT = "exact"
    PATTERN = "pattern"
    RANGE = "range"
    SINCE = "since"


@dataclass(frozen=True, slots=True)
class Clause:
    """One filter condition. `field` is None for full-text clauses."""

    field: Optional[str]
    operator: Operator
    operands: Tuple[object, ...]
    negated: bool = False

    def describe(self) -> str:
        target = self.field if self.field is not None else "*"
        values = ", ".join(repr(value) for value in self.operands)
        text = f"{target} {self.operator.value} ({values})"
        return f"NOT {text}" if self.negated else text


@dataclass(frozen=True, slots=True)
class SortDirective:
    field: str
    ascending: bool = True

    def describe(self) -> str:
        return f"{self.field} {'asc' if self.ascending else 'desc'}"


@dataclass(frozen=True, slots=True)
class CompiledQuery:
    clauses: Tuple[Clause, ...] = ()
    sort: Tuple[SortDirective, ...] = tuple(
        SortDirective(name, ascending) for name, ascending in DEFAULT_SORT
    )

    def explain(self) -> List[str]:
        lines = [f"where {clause.describe()}" for clause in self.clauses]
        lines.append("order by " + ", ".join(d.describe() for d in self.sort))
        return lines


def parse(query: str, *, now: Optional[datetime] = None) -> List[QueryTerm]:
    """Parse query text into terms. Never raises on user input."""
    terms: List[QueryTerm] = []
    for raw in query.split():
        sort = _parse_sort(raw)
        if sort is not None:
            terms.append(sort)
            continue
        negated = raw.startswith("^")
        body = raw[1:] if negated else raw
        if not body:
            continue
        name, sep, value = body.partition(":")
        if sep and name:
            terms.append(
                FieldTerm(
                    name=name,
                    operation=parse_field_operation(name, value, now=now),
                    negated=negated,
                )
            )
        else:
            terms.append(FullText(text=body, negated=negated))
    return terms


def parse_field_operation(
    name: str, value: str, *, now: Optional[datetime] = None
) -> FieldOperation:
    if value.startswith("="):
        return Exact(value[1:])
    if value.startswith(":"):
        return Pattern(value[1:])
    if ".." in value:
        parts = value.split("..")
        if len(parts) == 2:
            start, end = parts
            return Range(start or None, end or None)
        logger.debug("Malformed range %r for %s, using substring match", value, name)
    if name == DATE_ADDED_FIELD and value.startswith("-"):
        since = parse_relative_date(value, now=now)
        if since is not None:
            return RelativeDate(since)
        logger.debug("Unrecognised relative date %r, using substring match", value)
    return Substring(value)


def parse_relative_date(value: str, *, now: Optional[datetime] = None) -> Optional[date]:
    match = RELATIVE_DATE_PATTERN.match(value)
    if not match:
        return None
    days = int(match.group("count")) * RELATIVE_UNITS[match.group("unit")]
    current = now or datetime.now(timezone.utc)
    try:
        return (current - timedelta(days=days)).date()
    except (OverflowError, ValueError):
        return None


def regex_to_glob(pattern: str) -> str:
    return pattern.replace(".*", "*").replace(".", "?").replace("^", "").replace("$", "")


def compile_terms(terms: List[QueryTerm]) -> CompiledQuery:
    clauses: List[Clause] = []
    sort: List[SortDirective] = []
    for term in terms:
        if isinstance(term, SortTerm):
            sort.append(SortDirective(term.field, term.ascending))
        elif isinstance(term, FullText):
            clauses.append(Clause(None, Operator.FULLTEXT, (term.text,), term.negated))
        else:
            clauses.append(_field_clause(term))
    if not sort:
        return CompiledQuery(clauses=tuple(clauses))
    return CompiledQuery(clauses=tuple(clauses), sort=tuple(sort))


def compile_query(query: str, *, now: Optional[datetime] = None) -> CompiledQuery:
    return compile_terms(parse(query, now=now))


def _parse_sort(raw: str) -> Optional[SortTerm]:
    if len(raw) < 2 or raw[-1] not in "+-":
        return None
    field = raw[:-1]
    # "title:a-" is a filter value, not a sort on a field called "title:a".
    if ":" in field or field.startswith("^"):
        return None
    return SortTerm(field=field, ascending=raw[-1] == "+")


def _field_clause(term: FieldTerm) -> Clause:
    op = term.operation
    if isinstance(op, Exact):
        return Clause(term.name, Operator.EXACT, (op.value,), term.negated)
    if isinstance(op, Pattern):
        return Clause(term.name, Operator.PATTERN, (op.glob,), term.negated)
    if isinstance(op, Range):
        return Clause(term.name, Operator.RANGE, (op.start, op.end), term.negated)
    if isinstance(op, RelativeDate):
        return Clause(term.name, Operator.SINCE, (op.since,), term.negated)
    return Clause(term.name, Operator.SUBSTRING, (op.value,), term.negated)
