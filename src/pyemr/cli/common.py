"""Helpers shared by the ``pyemr`` subcommands."""

from __future__ import annotations

import argparse
import logging
from pathlib import Path

from pyemr.ontology import Ontology
from pyemr.reasoner import ExpressionMaterializingReasoner
from pyemr.syntax import ObjectProperty

logger = logging.getLogger(__name__)


def load_reasoner(args: argparse.Namespace) -> ExpressionMaterializingReasoner:
    """Load the ``-o`` ontology and wrap it in a flushed reasoner.

    Raises:
        FileNotFoundError: If the ontology file does not exist.
        ValueError: If the file cannot be parsed.
    """
    path = Path(args.ontology)
    if not path.exists():
        raise FileNotFoundError(f"Ontology file {path} does not exist.")
    ontology = Ontology.from_file(path)
    logger.info("Loaded %s: %d axioms, %d imports", path, len(ontology), len(ontology.imports))
    reasoner = ExpressionMaterializingReasoner(
        ontology, include_imports=getattr(args, "include_imports", False)
    )
    reasoner.flush()
    return reasoner


def relations_from(args: argparse.Namespace) -> list[ObjectProperty] | None:
    """The ``-r`` relations, or None when none were given."""
    names = getattr(args, "relation", None)
    if not names:
        return None
    return [ObjectProperty(name) for name in names]
