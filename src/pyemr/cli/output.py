"""Structured JSON output for the pyEMR CLI."""

from __future__ import annotations

import json
import logging
import sys
from collections.abc import Iterable

logger = logging.getLogger(__name__)


def emit_json(data: dict) -> None:
    """Print compact single-line JSON to stdout."""
    print(json.dumps(data, separators=(",", ":")))


def emit_lines(items: Iterable[object], *, quiet: bool = False) -> None:
    """Print one item per line, sorted."""
    if quiet:
        return
    for line in sorted(str(item) for item in items):
        print(line)


def materialize_response(
    ontology_file: str,
    relations: Iterable[object],
    created: int,
    expressions: int,
) -> dict:
    """Build a materialize response dict."""
    return {
        "action": "materialized",
        "ontology_file": ontology_file,
        "relations": sorted(str(r) for r in relations),
        "created": created,
        "expressions": expressions,
    }


def subsumptions_response(axioms: Iterable[object]) -> dict:
    """Build a subsumptions response dict."""
    items = sorted(str(a) for a in axioms)
    return {"subsumptions": items, "count": len(items)}


def classes_response(query: str, results: Iterable[object], *, direct: bool) -> dict:
    """Build a response dict for class- or expression-valued queries."""
    return {
        "query": query,
        "direct": direct,
        "results": sorted(str(r) for r in results),
    }


def ask_response(axiom: str, entailed: bool) -> dict:
    """Build an ask response dict."""
    return {
        "status": "ENTAILED" if entailed else "NOT_ENTAILED",
        "axiom": axiom,
    }


def error_response(message: str) -> dict:
    """Build an error response dict."""
    return {"error": message}


def emit_error(message: str, *, json_mode: bool = False, quiet: bool = False) -> None:
    """Print an error message to stderr, or as JSON to stdout."""
    if quiet:
        return
    if json_mode:
        emit_json(error_response(message))
    else:
        print(f"Error: {message}", file=sys.stderr)
