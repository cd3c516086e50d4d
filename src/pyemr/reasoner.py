"""Expression Materializing Reasoner.

Wraps a classifier that is fast on named classes but weak on anonymous
existential expressions. Expressions ``R some C`` are materialized as
synthetic named classes in an expanded ontology that imports the caller's
ontology; the classifier works on the expanded ontology, and answers that
mention synthetic classes are translated back into expressions::

    ont = Ontology.from_file("tree.ttl")
    with ExpressionMaterializingReasoner(ont) as reasoner:
        reasoner.materialize([ObjectProperty("partOf")])
        reasoner.existential_superclasses_of(Class("Branch"), ObjectProperty("partOf"))
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from pyemr.classifier import (
    BufferingMode,
    Classifier,
    ClassifierFactory,
    ReasonerConfiguration,
)
from pyemr.el import ELClassifier
from pyemr.expanded import ExpandedOntologyBuilder
from pyemr.materializer import MaterializationDriver
from pyemr.ontology import Ontology
from pyemr.registry import ExpressionRegistry
from pyemr.rewriter import RangeAxiomRewriter
from pyemr.syntax import (
    Axiom,
    Class,
    ClassExpression,
    EquivalentClasses,
    ObjectProperty,
    ObjectSomeValuesFrom,
    SubClassOf,
)
from pyemr.translator import QueryTranslator

logger = logging.getLogger(__name__)


class ExpressionMaterializingReasoner:
    """Materialization and query-rewriting layer over a classifier.

    Parameters:
        ontology: The caller's ontology. It is imported by the expanded
            ontology and never modified (except for an IRI minted when it
            has none).
        classifier_factory: Creates the wrapped classifier over the
            expanded ontology.
        buffering_mode: Passed to the classifier factory.
        configuration: Passed to the classifier factory.
        include_imports: Whether materialization sweeps the imports
            closure of *ontology* as well.
        registry: Registry to use instead of a fresh one.
        progress_interval: Classes between progress messages in
            ``existential_subsumptions``.
    """

    name = "Expression Materializing Reasoner"

    def __init__(
        self,
        ontology: Ontology,
        classifier_factory: ClassifierFactory = ELClassifier,
        *,
        buffering_mode: BufferingMode = BufferingMode.BUFFERING,
        configuration: ReasonerConfiguration | None = None,
        include_imports: bool = False,
        registry: ExpressionRegistry | None = None,
        progress_interval: int = 1000,
    ) -> None:
        self._ontology = ontology
        self._registry = registry if registry is not None else ExpressionRegistry()
        self._builder = ExpandedOntologyBuilder(ontology)
        for cls, expr in self._registry.items():
            self._builder.add_materialization(cls, expr)

        self._classifier: Classifier = classifier_factory(
            self._builder.ontology,
            buffering_mode=buffering_mode,
            configuration=configuration,
        )
        self.range_axioms: frozenset[EquivalentClasses] = frozenset()
        if not self._classifier.supports_range_axioms:
            self.range_axioms = RangeAxiomRewriter(
                ontology, self._classifier, self._builder
            ).rewrite()
        self._classifier.flush()

        self._driver = MaterializationDriver(
            ontology, self._registry, self._builder, self._classifier,
            include_imports=include_imports,
        )
        self._translator = QueryTranslator(
            ontology, self._registry, self._classifier, self._driver,
            progress_interval=progress_interval,
        )
        logger.debug(
            "%s over %s (%s), %d range axioms",
            self.name, ontology.iri, buffering_mode.value, len(self.range_axioms),
        )

    def __repr__(self) -> str:
        return (
            f"ExpressionMaterializingReasoner(ontology={self._ontology.iri!r}, "
            f"expressions={len(self._registry)})"
        )

    def __enter__(self) -> ExpressionMaterializingReasoner:
        return self

    def __exit__(self, *exc: object) -> None:
        self.dispose()

    # --- Components ---

    @property
    def ontology(self) -> Ontology:
        """The caller's (base) ontology."""
        return self._ontology

    @property
    def expanded_ontology(self) -> Ontology:
        return self._builder.ontology

    @property
    def wrapped_classifier(self) -> Classifier:
        return self._classifier

    @property
    def registry(self) -> ExpressionRegistry:
        return self._registry

    @property
    def materialized_relations(self) -> frozenset[ObjectProperty]:
        return self._driver.materialized

    @property
    def include_imports(self) -> bool:
        return self._driver.include_imports

    @include_imports.setter
    def include_imports(self, value: bool) -> None:
        self._driver.include_imports = value

    # --- Materialization ---

    def materialize_all(self) -> int:
        return self._driver.materialize_all()

    def materialize(self, relations: Iterable[ObjectProperty]) -> int:
        return self._driver.materialize(relations)

    def materialize_one(self, relation: ObjectProperty) -> int:
        return self._driver.materialize_one(relation)

    # --- Expression queries ---

    def super_expressions_of(
        self, expr: ClassExpression, direct: bool = False
    ) -> frozenset[ClassExpression]:
        return self._translator.super_expressions_of(expr, direct)

    def existential_superclasses_of(
        self,
        base_class: Class,
        relation: ObjectProperty,
        direct: bool = False,
        reflexive: bool = False,
    ) -> frozenset[ObjectSomeValuesFrom]:
        return self._translator.existential_superclasses_of(
            base_class, relation, direct, reflexive
        )

    def existential_subsumptions(
        self,
        relations: ObjectProperty | Iterable[ObjectProperty] | None = None,
    ) -> frozenset[SubClassOf]:
        return self._translator.existential_subsumptions(relations)

    def existential_superclasses_over(
        self, expr: ClassExpression, relation: ObjectProperty, direct: bool = False
    ) -> frozenset[Class]:
        return self._translator.existential_superclasses_over(expr, relation, direct)

    # --- Classifier pass-through ---

    @property
    def buffering_mode(self) -> BufferingMode:
        return self._classifier.buffering_mode

    def flush(self) -> None:
        self._classifier.flush()

    def pending_axiom_additions(self) -> frozenset[Axiom]:
        return self._classifier.pending_axiom_additions()

    def pending_axiom_removals(self) -> frozenset[Axiom]:
        return self._classifier.pending_axiom_removals()

    def is_consistent(self) -> bool:
        return self._classifier.is_consistent()

    def is_satisfiable(self, ce: ClassExpression) -> bool:
        return self._classifier.is_satisfiable(ce)

    def unsatisfiable_classes(self) -> frozenset[Class]:
        return self._classifier.unsatisfiable_classes()

    def super_classes(self, ce: ClassExpression, direct: bool = False) -> frozenset[Class]:
        return self._classifier.super_classes(ce, direct)

    def sub_classes(self, ce: ClassExpression, direct: bool = False) -> frozenset[Class]:
        return self._classifier.sub_classes(ce, direct)

    def equivalent_classes(self, ce: ClassExpression) -> frozenset[Class]:
        return self._classifier.equivalent_classes(ce)

    def is_entailed(self, axioms: Axiom | Iterable[Axiom]) -> bool:
        return self._classifier.is_entailed(axioms)

    def is_entailment_checking_supported(self, axiom_type: type) -> bool:
        return self._classifier.is_entailment_checking_supported(axiom_type)

    def precompute_inferences(self) -> None:
        self._classifier.precompute_inferences()

    def is_precomputed(self) -> bool:
        return self._classifier.is_precomputed()

    def interrupt(self) -> None:
        self._classifier.interrupt()

    def dispose(self) -> None:
        self._classifier.dispose()
