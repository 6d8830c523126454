from __future__ import annotations

import logging
from typing import Dict, List

from ..library import Library
from ..query import compile_query

logger = logging.getLogger(__name__)


def parse_assignments(values: List[str]) -> Dict[str, str]:
    assignments: Dict[str, str] = {}
    for value in values:
        name, sep, raw = value.partition("=")
        if not sep or not name.strip():
            raise ValueError(f"Expected field=value, got {value!r}")
        assignments[name.strip()] = raw
    return assignments


def run_modify(library: Library, query: str, values: List[str]) -> int:
    count = library.modify_items(compile_query(query), parse_assignments(values))
    print(f"Modified {count} items")
    return count


def run_remove(library: Library, query: str) -> int:
    if not query.strip():
        raise ValueError("Refusing to remove without a query")
    removed = library.remove_items(compile_query(query))
    for track in removed:
        logger.debug("Removed %s", track.path)
    print(f"Removed {len(removed)} items")
    return len(removed)
