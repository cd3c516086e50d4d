"""``pyemr ask`` subcommand — check whether an axiom is entailed."""

from __future__ import annotations

import argparse
import logging

from pyemr.classifier import ReasonerError
from pyemr.cli.common import load_reasoner
from pyemr.cli.exitcodes import EXIT_ERROR, EXIT_NOT_ENTAILED, EXIT_SUCCESS
from pyemr.cli.output import ask_response, emit_error, emit_json
from pyemr.syntax import parse_axiom

logger = logging.getLogger(__name__)


def run_ask(args: argparse.Namespace) -> int:
    """Execute the ``ask`` subcommand."""
    json_mode = getattr(args, "json", False)
    quiet = getattr(args, "quiet", False)

    try:
        axiom = parse_axiom(args.axiom)
        with load_reasoner(args) as reasoner:
            entailed = reasoner.is_entailed(axiom)
    except (OSError, ValueError, ReasonerError) as e:
        emit_error(str(e), json_mode=json_mode, quiet=quiet)
        return EXIT_ERROR

    if json_mode:
        emit_json(ask_response(str(axiom), entailed))
    elif not quiet:
        print("ENTAILED" if entailed else "NOT ENTAILED")

    logger.info("Query %s: %s", axiom, "ENTAILED" if entailed else "NOT ENTAILED")
    return EXIT_SUCCESS if entailed else EXIT_NOT_ENTAILED
