"""Range-axiom rewriting for classifiers without range support.

Given ``Range(R, C)``, every class disjoint with C, or with any superclass of
C, can never be an R-successor, so ``R some d`` is unsatisfiable. For example:

    partOf Range Material
    Material SubClassOf Continuant
    DisjointClasses: Continuant, Occurrent

yields ``owl:Nothing EquivalentTo (partOf some Occurrent)``. The rewriting is
sound but incomplete: it follows asserted disjointness only, and never asks
the classifier about satisfiability.
"""

from __future__ import annotations

import logging
from collections import defaultdict

from pyemr.classifier import Classifier
from pyemr.expanded import ExpandedOntologyBuilder
from pyemr.ontology import Ontology
from pyemr.syntax import (
    NOTHING,
    ClassExpression,
    DisjointClasses,
    EquivalentClasses,
    ObjectPropertyRange,
    equivalent,
    some,
)

logger = logging.getLogger(__name__)


class RangeAxiomRewriter:
    """Turns range axioms plus disjointness into unsatisfiability axioms.

    Parameters:
        base: Ontology whose range and disjointness axioms are read.
        classifier: Supplies the superclasses of each range.
        builder: Receives the generated axioms.
    """

    def __init__(
        self,
        base: Ontology,
        classifier: Classifier,
        builder: ExpandedOntologyBuilder,
    ) -> None:
        self.base = base
        self.classifier = classifier
        self.builder = builder

    def _disjointness_map(self) -> dict[ClassExpression, set[ClassExpression]]:
        disjoint_with: dict[ClassExpression, set[ClassExpression]] = defaultdict(set)
        for axiom in self.base.axioms_of_type(DisjointClasses, include_imports=True):
            for operand in axiom.operands:  # type: ignore[union-attr]
                disjoint_with[operand].update(axiom.operands - {operand})  # type: ignore[union-attr]
        return disjoint_with

    def rewrite(self) -> frozenset[EquivalentClasses]:
        """Generate and add the axioms; returns every axiom generated."""
        disjoint_with = self._disjointness_map()
        generated: set[EquivalentClasses] = set()

        for axiom in self.base.axioms_of_type(ObjectPropertyRange, include_imports=True):
            prop, range_ = axiom.property, axiom.range  # type: ignore[union-attr]
            excluded: set[ClassExpression] = set(disjoint_with.get(range_, ()))
            for sup in self.classifier.super_classes(range_, direct=False):
                excluded.update(disjoint_with.get(sup, ()))

            for d in sorted(excluded, key=str):
                translated = equivalent(NOTHING, some(prop, d))
                generated.add(translated)
                logger.info("Translated %s --> %s", axiom, translated)

        added = self.builder.add_axioms(sorted(generated, key=str))
        logger.debug("Range rewriting: %d axioms generated, %d new", len(generated), added)
        return frozenset(generated)
