"""``pyemr materialize`` subcommand — materialize existential expressions."""

from __future__ import annotations

import argparse
import logging

from pyemr.classifier import ReasonerError
from pyemr.cli.common import load_reasoner, relations_from
from pyemr.cli.exitcodes import EXIT_ERROR, EXIT_SUCCESS
from pyemr.cli.output import emit_error, emit_json, materialize_response

logger = logging.getLogger(__name__)


def run_materialize(args: argparse.Namespace) -> int:
    """Execute the ``materialize`` subcommand."""
    json_mode = getattr(args, "json", False)
    quiet = getattr(args, "quiet", False)

    try:
        with load_reasoner(args) as reasoner:
            relations = relations_from(args)
            if relations is None:
                created = reasoner.materialize_all()
            else:
                created = reasoner.materialize(relations)
            materialized = reasoner.materialized_relations
            expressions = sorted(reasoner.registry.items(), key=lambda item: str(item[0]))
    except (OSError, ValueError, ReasonerError) as e:
        emit_error(str(e), json_mode=json_mode, quiet=quiet)
        return EXIT_ERROR

    if json_mode:
        emit_json(materialize_response(args.ontology, materialized, created, len(expressions)))
    elif not quiet:
        for cls, expr in expressions:
            print(f"{cls} EquivalentTo {expr}")
        print(f"Materialized {created} expressions for {len(materialized)} relations")

    logger.info("Materialized %d expressions from %s", created, args.ontology)
    return EXIT_SUCCESS
