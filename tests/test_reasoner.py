"""Tests for pyemr.reasoner — ExpressionMaterializingReasoner facade."""

import pytest

from pyemr import ExpressionMaterializingReasoner
from pyemr.classifier import (
    BufferingMode,
    ReasonerConfiguration,
    ReasonerError,
    ReasonerTimeoutError,
)
from pyemr.el import ELClassifier
from pyemr.registry import ExpressionRegistry
from pyemr.syntax import (
    NOTHING,
    THING,
    Class,
    ObjectProperty,
    SubClassOf,
    parse_axiom,
    some,
)

from conftest import make_ontology

PART_OF = ObjectProperty("partOf")


class RecordingFactory:
    """Classifier factory that records its arguments."""

    def __init__(self, supports_range_axioms=False):
        self.calls = []
        self.supports_range_axioms = supports_range_axioms

    def __call__(self, ontology, *, buffering_mode, configuration):
        self.calls.append((ontology, buffering_mode, configuration))
        classifier = ELClassifier(
            ontology, buffering_mode=buffering_mode, configuration=configuration
        )
        classifier.supports_range_axioms = self.supports_range_axioms
        return classifier


class TestConstruction:
    def test_defaults(self, tree_reasoner):
        assert isinstance(tree_reasoner.wrapped_classifier, ELClassifier)
        assert tree_reasoner.buffering_mode is BufferingMode.BUFFERING
        assert tree_reasoner.include_imports is False
        assert tree_reasoner.name == "Expression Materializing Reasoner"
        assert tree_reasoner.materialized_relations == frozenset()

    def test_classifier_runs_on_expanded_ontology(self, tree_reasoner):
        assert tree_reasoner.wrapped_classifier.root_ontology is tree_reasoner.expanded_ontology
        assert tree_reasoner.expanded_ontology.imports == (tree_reasoner.ontology,)

    @pytest.mark.parametrize("mode", list(BufferingMode))
    def test_buffering_mode_passed_through(self, tree_ontology, mode):
        factory = RecordingFactory()
        config = ReasonerConfiguration(timeout=30)
        with ExpressionMaterializingReasoner(
            tree_ontology, factory, buffering_mode=mode, configuration=config
        ) as reasoner:
            assert reasoner.buffering_mode is mode
        assert len(factory.calls) == 1
        ontology, passed_mode, passed_config = factory.calls[0]
        assert ontology is reasoner.expanded_ontology
        assert passed_mode is mode
        assert passed_config is config

    def test_range_rewriting_when_unsupported(self, range_ontology):
        with ExpressionMaterializingReasoner(range_ontology) as reasoner:
            expected = parse_axiom("Nothing EquivalentTo partOf some Occurrent")
            assert reasoner.range_axioms == frozenset({expected})
            assert expected in reasoner.expanded_ontology

    def test_range_axioms_visible_without_flush(self, range_ontology):
        with ExpressionMaterializingReasoner(range_ontology) as reasoner:
            assert reasoner.buffering_mode is BufferingMode.BUFFERING
            assert reasoner.pending_axiom_additions() == frozenset()
            assert not reasoner.is_satisfiable(some("partOf", "Process"))

    def test_no_range_rewriting_when_supported(self, range_ontology):
        factory = RecordingFactory(supports_range_axioms=True)
        with ExpressionMaterializingReasoner(range_ontology, factory) as reasoner:
            assert reasoner.range_axioms == frozenset()
            assert len(reasoner.expanded_ontology) == 0

    def test_base_not_modified(self, tree_ontology):
        before = tree_ontology.axioms()
        with ExpressionMaterializingReasoner(tree_ontology) as reasoner:
            reasoner.materialize_all()
        assert tree_ontology.axioms() == before


class TestRegistryInjection:
    def test_injected_registry_used(self, tree_ontology):
        registry = ExpressionRegistry()
        with ExpressionMaterializingReasoner(tree_ontology, registry=registry) as reasoner:
            reasoner.materialize([PART_OF])
            assert reasoner.registry is registry
        assert len(registry) == 3

    def test_prepopulated_registry_axioms_emitted(self, tree_ontology):
        registry = ExpressionRegistry()
        cls = registry.register(some("partOf", "Tree"))
        with ExpressionMaterializingReasoner(tree_ontology, registry=registry) as reasoner:
            assert reasoner.equivalent_classes(some("partOf", "Tree")) == frozenset({cls})

    def test_instances_independent(self, tree_ontology):
        with ExpressionMaterializingReasoner(tree_ontology) as first:
            with ExpressionMaterializingReasoner(tree_ontology) as second:
                first.materialize([PART_OF])
                assert len(second.registry) == 0
                assert second.materialized_relations == frozenset()

    def test_shared_registry_keeps_expanded_ontologies_apart(self):
        registry = ExpressionRegistry()
        a = make_ontology("Class: A", iri="http://example.org/a")
        b = make_ontology("Class: B", iri="http://example.org/b")
        with ExpressionMaterializingReasoner(a, registry=registry) as first:
            with ExpressionMaterializingReasoner(b, registry=registry) as second:
                assert second.materialize([PART_OF]) == 1
                assert len(first.expanded_ontology) == 0
                assert len(second.expanded_ontology) == 3
                assert some("partOf", "B") in registry

    def test_shared_registry_entries_materialized_per_reasoner(self, tree_ontology):
        registry = ExpressionRegistry()
        with ExpressionMaterializingReasoner(tree_ontology, registry=registry) as first:
            with ExpressionMaterializingReasoner(tree_ontology, registry=registry) as second:
                assert first.materialize([PART_OF]) == 3
                assert len(second.expanded_ontology) == 0
                assert second.existential_superclasses_of(Class("Branch"), PART_OF) == frozenset()
                assert second.materialize([PART_OF]) == 3
                assert len(registry) == 3
                assert second.existential_superclasses_of(Class("Branch"), PART_OF) == frozenset(
                    {some("partOf", "Tree")}
                )


class TestMaterialization:
    def test_idempotent(self, tree_reasoner):
        assert tree_reasoner.materialize([PART_OF]) == 3
        size = len(tree_reasoner.expanded_ontology)
        assert tree_reasoner.materialize([PART_OF]) == 0
        assert len(tree_reasoner.expanded_ontology) == size
        assert len(tree_reasoner.registry) == 3

    def test_monotonic(self, tree_reasoner):
        tree_reasoner.materialize_one(PART_OF)
        before = dict(tree_reasoner.registry.items())
        tree_reasoner.materialize_one(ObjectProperty("hasPart"))
        after = dict(tree_reasoner.registry.items())
        assert before.items() <= after.items()
        assert tree_reasoner.materialized_relations == frozenset(
            {PART_OF, ObjectProperty("hasPart")}
        )

    def test_include_imports_setter(self):
        upper = make_ontology("Plant SubClassOf Thing", iri="http://example.org/upper")
        base = make_ontology("Tree SubClassOf Plant")
        base.add_import(upper)
        with ExpressionMaterializingReasoner(base) as reasoner:
            reasoner.include_imports = True
            assert reasoner.include_imports
            assert reasoner.materialize_one(PART_OF) == 2

    def test_include_imports_constructor(self):
        upper = make_ontology("Class: Root", iri="http://example.org/upper")
        base = make_ontology("Tree SubClassOf Plant")
        base.add_import(upper)
        with ExpressionMaterializingReasoner(base, include_imports=True) as reasoner:
            assert reasoner.materialize_one(PART_OF) == 3


class TestPassThrough:
    def test_class_queries(self, tree_reasoner):
        assert tree_reasoner.super_classes(Class("Branch")) == frozenset({Class("Tree"), THING})
        assert tree_reasoner.sub_classes(Class("Tree"), direct=True) == frozenset({Class("Branch")})
        assert tree_reasoner.equivalent_classes(Class("Tree")) == frozenset({Class("Tree")})
        assert tree_reasoner.is_satisfiable(Class("Leaf"))
        assert tree_reasoner.is_consistent()
        assert tree_reasoner.unsatisfiable_classes() == frozenset({NOTHING})

    def test_entailment(self, tree_reasoner):
        assert tree_reasoner.is_entailed(SubClassOf(Class("Branch"), Class("Tree")))
        assert tree_reasoner.is_entailed(parse_axiom("Leaf SubClassOf partOf some Tree"))
        assert tree_reasoner.is_entailment_checking_supported(SubClassOf)

    def test_pending_changes_after_materialization(self, tree_ontology):
        with ExpressionMaterializingReasoner(tree_ontology) as reasoner:
            assert reasoner.pending_axiom_additions() == frozenset()
            reasoner.expanded_ontology.add_axiom(parse_axiom("Tree SubClassOf Plant"))
            assert reasoner.pending_axiom_additions() == frozenset(
                {parse_axiom("Tree SubClassOf Plant")}
            )
            assert reasoner.pending_axiom_removals() == frozenset()
            reasoner.flush()
            assert reasoner.pending_axiom_additions() == frozenset()

    def test_precompute(self, tree_reasoner):
        tree_reasoner.precompute_inferences()
        assert tree_reasoner.is_precomputed()

    def test_timeout_propagates(self, tree_ontology):
        config = ReasonerConfiguration(timeout=0)
        with ExpressionMaterializingReasoner(tree_ontology, configuration=config) as reasoner:
            with pytest.raises(ReasonerTimeoutError):
                reasoner.super_classes(Class("Leaf"))

    def test_context_manager_disposes(self, tree_ontology):
        with ExpressionMaterializingReasoner(tree_ontology) as reasoner:
            pass
        with pytest.raises(ReasonerError):
            reasoner.super_classes(Class("Leaf"))


class TestNonBuffering:
    def test_materialization_visible(self, tree_ontology):
        with ExpressionMaterializingReasoner(
            tree_ontology, buffering_mode=BufferingMode.NON_BUFFERING
        ) as reasoner:
            reasoner.materialize([PART_OF])
            assert reasoner.pending_axiom_additions() == frozenset()
            assert reasoner.existential_superclasses_of(Class("Branch"), PART_OF) == frozenset(
                {some("partOf", "Tree")}
            )

    def test_base_changes_visible_without_flush(self, tree_ontology):
        with ExpressionMaterializingReasoner(
            tree_ontology, buffering_mode=BufferingMode.NON_BUFFERING
        ) as reasoner:
            tree_ontology.add_axiom(parse_axiom("Tree SubClassOf Plant"))
            assert Class("Plant") in reasoner.super_classes(Class("Branch"))
