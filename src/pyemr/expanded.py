"""Builder for the expanded ontology.

The expanded ontology imports the caller's base ontology and collects every
axiom the materializing layer synthesizes: declarations, labels and
equivalences for synthetic classes, and unsatisfiability axioms from range
rewriting. The base ontology itself is never modified beyond being given an
IRI when it has none.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from pyemr.ontology import Ontology, generate_iri
from pyemr.registry import synthetic_label
from pyemr.syntax import (
    AnnotationAssertion,
    Axiom,
    Declaration,
    ObjectSomeValuesFrom,
    SyntheticClass,
    equivalent,
)

logger = logging.getLogger(__name__)


class ExpandedOntologyBuilder:
    """Owns the expanded ontology and appends synthesized axioms to it.

    Parameters:
        base: The caller's ontology; imported by reference.
    """

    def __init__(self, base: Ontology) -> None:
        if base.iri is None:
            base.iri = generate_iri()
            logger.debug("Minted IRI for anonymous base ontology: %s", base.iri)
        self.base = base
        self.ontology = Ontology(iri=generate_iri(), imports=[base])
        logger.debug("Expanded ontology %s imports %s", self.ontology.iri, base.iri)

    def add_materialization(self, cls: SyntheticClass, expr: ObjectSomeValuesFrom) -> int:
        """Declare *cls*, label it and make it equivalent to *expr*."""
        label = synthetic_label(expr.property, expr.filler)  # type: ignore[arg-type]
        return self.add_axioms([
            Declaration(cls),
            AnnotationAssertion(subject=cls.iri, value=label),
            equivalent(cls, expr),
        ])

    def has_materialization(self, cls: SyntheticClass) -> bool:
        """True if *cls* has been declared in this expanded ontology."""
        return Declaration(cls) in self.ontology

    def add_axioms(self, axioms: Iterable[Axiom]) -> int:
        """Append axioms; returns how many were new."""
        return self.ontology.add_axioms(axioms)
