"""Expression-aware queries answered through synthetic classes."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from pyemr.classifier import Classifier
from pyemr.materializer import MaterializationDriver
from pyemr.ontology import Ontology
from pyemr.registry import ExpressionRegistry
from pyemr.syntax import (
    Class,
    ClassExpression,
    ObjectProperty,
    ObjectSomeValuesFrom,
    SubClassOf,
)

logger = logging.getLogger(__name__)


class QueryTranslator:
    """Translates between expressions and synthetic classes around classifier calls.

    Parameters:
        base: The caller's ontology (class and property signature).
        registry: Synthetic class correspondence.
        classifier: Classifier over the expanded ontology.
        driver: Used to materialize relations on demand.
        progress_interval: Classes between progress messages in
            ``existential_subsumptions``.
    """

    def __init__(
        self,
        base: Ontology,
        registry: ExpressionRegistry,
        classifier: Classifier,
        driver: MaterializationDriver,
        *,
        progress_interval: int = 1000,
    ) -> None:
        self.base = base
        self.registry = registry
        self.classifier = classifier
        self.driver = driver
        self.progress_interval = progress_interval

    def super_expressions_of(
        self, expr: ClassExpression, direct: bool = False
    ) -> frozenset[ClassExpression]:
        """Superclasses of *expr*, synthetic classes replaced by their expressions."""
        self.classifier.flush()
        result: set[ClassExpression] = set()
        for cls in self.classifier.super_classes(expr, direct):
            translated = self.registry.lookup_expression(cls)
            result.add(translated if translated is not None else cls)
        logger.debug("Super expressions of %s: %d", expr, len(result))
        return frozenset(result)

    def existential_superclasses_of(
        self,
        base_class: Class,
        relation: ObjectProperty,
        direct: bool = False,
        reflexive: bool = False,
    ) -> frozenset[ObjectSomeValuesFrom]:
        """Registered expressions subsuming ``relation some base_class``.

        Returns the empty set when the query expression is unsatisfiable,
        even if *reflexive* is set.
        """
        self.classifier.flush()
        expr = ObjectSomeValuesFrom(relation, base_class)
        synthetic = self.registry.lookup_concept(expr)
        query: ClassExpression = expr
        # a shared registry may name expressions this classifier never saw
        if synthetic is not None and self.driver.is_materialized(synthetic):
            query = synthetic

        if not self.classifier.is_satisfiable(query):
            logger.debug("Unsatisfiable query: %s", expr)
            return frozenset()

        result: set[ObjectSomeValuesFrom] = set()
        for cls in self.classifier.super_classes(query, direct):
            translated = self.registry.lookup_expression(cls)
            if translated is not None:
                result.add(translated)
        if reflexive:
            result.add(expr)
        return frozenset(result)

    def existential_subsumptions(
        self,
        relations: ObjectProperty | Iterable[ObjectProperty] | None = None,
    ) -> frozenset[SubClassOf]:
        """Subsumptions ``R some C SubClassOf X`` between registered expressions.

        *relations* may be None (every object property of the base
        ontology), a single property, or an iterable of properties.
        """
        if relations is None:
            relations = self.base.object_properties_in_signature()
        elif isinstance(relations, ObjectProperty):
            relations = [relations]

        axioms: set[SubClassOf] = set()
        for relation in sorted(relations, key=str):
            logger.info("Calculating existential subsumptions for %s", relation)
            axioms.update(self._subsumptions_for(relation))
        return frozenset(axioms)

    def _subsumptions_for(self, relation: ObjectProperty) -> set[SubClassOf]:
        axioms: set[SubClassOf] = set()
        classes = sorted(self.base.classes_in_signature(include_imports=True), key=str)
        for n, cls in enumerate(classes, start=1):
            if n % self.progress_interval == 0:
                logger.info("Class %d/%d", n, len(classes))
            expr = ObjectSomeValuesFrom(relation, cls)
            for sup in self.existential_superclasses_of(cls, relation, reflexive=True):
                if sup != expr:
                    axioms.add(SubClassOf(expr, sup))
        return axioms

    def existential_superclasses_over(
        self,
        expr: ClassExpression,
        relation: ObjectProperty,
        direct: bool = False,
    ) -> frozenset[Class]:
        """Classes C such that *expr* is subsumed by ``relation some C``.

        Materializes *relation* first. With *direct*, a candidate is dropped
        when it is a superclass of another candidate.
        """
        self.driver.materialize_one(relation)
        candidates: set[Class] = set()
        for cls in self.classifier.super_classes(expr, direct=False):
            found = self.registry.lookup_expression(cls)
            if found is not None and found.property == relation:
                candidates.add(cls)
        if direct:
            redundant = {
                sup
                for cls in candidates
                for sup in self.classifier.super_classes(cls, direct=False)
                if sup in candidates
            }
            candidates -= redundant
        return frozenset(
            self.registry.lookup_expression(cls).filler  # type: ignore[union-attr, misc]
            for cls in candidates
        )
