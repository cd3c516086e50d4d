"""``pyemr subsumptions``, ``existential`` and ``superclasses`` subcommands."""

from __future__ import annotations

import argparse
import logging

from pyemr.classifier import ReasonerError
from pyemr.cli.common import load_reasoner, relations_from
from pyemr.cli.exitcodes import EXIT_ERROR, EXIT_SUCCESS
from pyemr.cli.output import (
    classes_response,
    emit_error,
    emit_json,
    emit_lines,
    subsumptions_response,
)
from pyemr.syntax import ObjectProperty, named_class, parse_class_expression

logger = logging.getLogger(__name__)


def run_subsumptions(args: argparse.Namespace) -> int:
    """Execute the ``subsumptions`` subcommand."""
    json_mode = getattr(args, "json", False)
    quiet = getattr(args, "quiet", False)

    try:
        with load_reasoner(args) as reasoner:
            relations = relations_from(args)
            if relations is None:
                reasoner.materialize_all()
            else:
                reasoner.materialize(relations)
            axioms = reasoner.existential_subsumptions(relations)
    except (OSError, ValueError, ReasonerError) as e:
        emit_error(str(e), json_mode=json_mode, quiet=quiet)
        return EXIT_ERROR

    if json_mode:
        emit_json(subsumptions_response(axioms))
    else:
        emit_lines(axioms, quiet=quiet)
    return EXIT_SUCCESS


def run_existential(args: argparse.Namespace) -> int:
    """Execute the ``existential`` subcommand."""
    json_mode = getattr(args, "json", False)
    quiet = getattr(args, "quiet", False)

    relation = ObjectProperty(args.relation)
    base_class = named_class(args.cls)
    try:
        with load_reasoner(args) as reasoner:
            reasoner.materialize_one(relation)
            results = reasoner.existential_superclasses_of(
                base_class, relation, direct=args.direct, reflexive=args.reflexive
            )
    except (OSError, ValueError, ReasonerError) as e:
        emit_error(str(e), json_mode=json_mode, quiet=quiet)
        return EXIT_ERROR

    if json_mode:
        query = f"{relation} some {base_class}"
        emit_json(classes_response(query, results, direct=args.direct))
    else:
        emit_lines(results, quiet=quiet)
    return EXIT_SUCCESS


def run_superclasses(args: argparse.Namespace) -> int:
    """Execute the ``superclasses`` subcommand."""
    json_mode = getattr(args, "json", False)
    quiet = getattr(args, "quiet", False)

    try:
        expr = parse_class_expression(args.expression)
        with load_reasoner(args) as reasoner:
            if args.over:
                results = reasoner.existential_superclasses_over(
                    expr, ObjectProperty(args.over), direct=args.direct
                )
            else:
                results = reasoner.super_expressions_of(expr, direct=args.direct)
    except (OSError, ValueError, ReasonerError) as e:
        emit_error(str(e), json_mode=json_mode, quiet=quiet)
        return EXIT_ERROR

    if json_mode:
        emit_json(classes_response(str(expr), results, direct=args.direct))
    else:
        emit_lines(results, quiet=quiet)
    logger.info("Superclasses of %s: %d", expr, len(results))
    return EXIT_SUCCESS
