"""Materialization of existential expressions as synthetic classes."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from pyemr.classifier import Classifier
from pyemr.expanded import ExpandedOntologyBuilder
from pyemr.ontology import Ontology
from pyemr.registry import ExpressionRegistry
from pyemr.syntax import ObjectProperty, ObjectSomeValuesFrom, SyntheticClass

logger = logging.getLogger(__name__)


class MaterializationDriver:
    """Sweeps relations over the class signature, registering ``R some C``.

    Each relation is swept at most once. Every swept expression is written
    to this driver's expanded ontology, including expressions another
    reasoner already put in a shared registry; the classifier sees them
    after the flush that ends every public operation.

    Parameters:
        base: Ontology supplying the class and property signature.
        registry: Registry naming the expressions.
        builder: Expanded ontology receiving the defining axioms.
        classifier: Flushed after each materialization.
        include_imports: Whether the signature includes the imports closure.
    """

    def __init__(
        self,
        base: Ontology,
        registry: ExpressionRegistry,
        builder: ExpandedOntologyBuilder,
        classifier: Classifier,
        *,
        include_imports: bool = False,
    ) -> None:
        self.base = base
        self.registry = registry
        self.builder = builder
        self.classifier = classifier
        self.include_imports = include_imports
        self._materialized: set[ObjectProperty] = set()

    @property
    def materialized(self) -> frozenset[ObjectProperty]:
        """Relations already swept."""
        return frozenset(self._materialized)

    def materialize_all(self) -> int:
        """Materialize every object property in the base signature."""
        logger.info("Materializing expressions for all properties")
        return self.materialize(
            self.base.object_properties_in_signature(include_imports=self.include_imports)
        )

    def materialize(self, relations: Iterable[ObjectProperty]) -> int:
        """Materialize several relations, flushing once at the end."""
        relations = sorted(relations, key=str)
        logger.info("Materializing expressions for: %s", ", ".join(map(str, relations)))
        created = 0
        for relation in relations:
            if relation not in self._materialized:
                created += self._sweep(relation)
        self.classifier.flush()
        return created

    def materialize_one(self, relation: ObjectProperty) -> int:
        """Materialize a single relation; a no-op if already done."""
        if relation in self._materialized:
            return 0
        created = self._sweep(relation)
        self.classifier.flush()
        return created

    def is_materialized(self, cls: SyntheticClass) -> bool:
        """True if *cls* is defined in this driver's expanded ontology."""
        return self.builder.has_materialization(cls)

    def _sweep(self, relation: ObjectProperty) -> int:
        logger.info("Materializing expressions for: %s", relation)
        created = 0
        classes = self.base.classes_in_signature(include_imports=self.include_imports)
        for cls in sorted(classes, key=str):
            if self.registry.is_synthetic(cls):
                continue
            expr = ObjectSomeValuesFrom(relation, cls)
            if self.builder.add_materialization(self.registry.register(expr), expr):
                created += 1
        self._materialized.add(relation)
        logger.info("Materialized %d expressions for %s", created, relation)
        return created
