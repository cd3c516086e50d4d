"""CLI entry point for pyEMR.

Usage::

    pyemr materialize  -o tree.ttl -r partOf
    pyemr subsumptions -o tree.ttl -r partOf
    pyemr existential  -o tree.ttl -r partOf Branch --reflexive
    pyemr superclasses -o tree.ttl "Leaf" --over partOf --direct
    pyemr ask          -o tree.ttl "Leaf SubClassOf partOf some Tree"
"""

from __future__ import annotations

import argparse
import logging
import sys

from pyemr._version import __version__


def _add_common(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("-o", "--ontology", required=True, help="Path to the ontology file (Turtle, RDF/XML, N-Triples, ...)")
    parser.add_argument("--json", action="store_true", help="Emit a single JSON object on stdout")
    parser.add_argument("-q", "--quiet", action="store_true", help="Suppress normal output")


def _configure_logging(verbosity: int) -> None:
    if verbosity <= 0:
        return
    logging.basicConfig(
        level=logging.DEBUG if verbosity > 1 else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the ``pyemr`` CLI."""
    parser = argparse.ArgumentParser(
        prog="pyemr",
        description="pyEMR — Expression Materializing Reasoner",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "-v", "--verbose", action="count", default=0,
        help="Log progress to stderr (-vv for debug detail)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # --- materialize ---
    mat_parser = subparsers.add_parser(
        "materialize", help="Materialize 'R some C' expressions as named classes"
    )
    _add_common(mat_parser)
    mat_parser.add_argument(
        "-r", "--relation", action="append",
        help="Object property to materialize (repeatable; default: all)",
    )
    mat_parser.add_argument(
        "--include-imports", action="store_true",
        help="Sweep the classes and properties of imported ontologies too",
    )

    # --- subsumptions ---
    sub_parser = subparsers.add_parser(
        "subsumptions", help="List subsumptions between existential expressions"
    )
    _add_common(sub_parser)
    sub_parser.add_argument(
        "-r", "--relation", action="append",
        help="Object property (repeatable; default: all)",
    )

    # --- existential ---
    ex_parser = subparsers.add_parser(
        "existential", help="Existential superclasses of 'R some CLASS'"
    )
    _add_common(ex_parser)
    ex_parser.add_argument("-r", "--relation", required=True, help="Object property")
    ex_parser.add_argument("cls", metavar="CLASS", help="Filler class")
    ex_parser.add_argument("--direct", action="store_true", help="Direct superclasses only")
    ex_parser.add_argument(
        "--reflexive", action="store_true", help="Include the query expression itself"
    )

    # --- superclasses ---
    sup_parser = subparsers.add_parser(
        "superclasses", help="Superclasses of a class expression"
    )
    _add_common(sup_parser)
    sup_parser.add_argument("expression", help='Class expression, e.g. "partOf some Tree"')
    sup_parser.add_argument("--direct", action="store_true", help="Direct superclasses only")
    sup_parser.add_argument(
        "--over", metavar="REL", default=None,
        help="Report fillers C such that EXPR SubClassOf REL some C",
    )

    # --- ask ---
    ask_parser = subparsers.add_parser("ask", help="Check whether an axiom is entailed")
    _add_common(ask_parser)
    ask_parser.add_argument("axiom", help='Axiom, e.g. "Leaf SubClassOf partOf some Tree"')

    args = parser.parse_args(argv)
    _configure_logging(args.verbose)

    if args.command is None:
        parser.print_help()
        return 0

    if args.command == "materialize":
        from pyemr.cli.materialize import run_materialize
        return run_materialize(args)
    elif args.command == "subsumptions":
        from pyemr.cli.query import run_subsumptions
        return run_subsumptions(args)
    elif args.command == "existential":
        from pyemr.cli.query import run_existential
        return run_existential(args)
    elif args.command == "superclasses":
        from pyemr.cli.query import run_superclasses
        return run_superclasses(args)
    elif args.command == "ask":
        from pyemr.cli.ask import run_ask
        return run_ask(args)

    return 0


if __name__ == "__main__":
    sys.exit(main())
