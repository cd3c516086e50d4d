"""Shared fixtures for pyEMR test suite."""

import pytest

from pyemr import ExpressionMaterializingReasoner, Ontology
from pyemr.syntax import parse_axiom


def make_ontology(*axioms: str, iri: str | None = "http://example.org/test") -> Ontology:
    """Build an ontology from axioms in the textual syntax."""
    return Ontology(iri=iri, axioms=[parse_axiom(a) for a in axioms])


@pytest.fixture
def empty_ontology():
    return Ontology(iri="http://example.org/empty")


@pytest.fixture
def tree_ontology():
    """partOf with classes Leaf, Branch, Tree and Branch SubClassOf Tree."""
    return make_ontology(
        "ObjectProperty: partOf",
        "Class: Leaf",
        "Class: Branch",
        "Class: Tree",
        "Branch SubClassOf Tree",
        "Leaf SubClassOf partOf some Branch",
    )


@pytest.fixture
def range_ontology():
    """partOf Range Material, Material below Continuant, Continuant disjoint Occurrent."""
    return make_ontology(
        "ObjectProperty: partOf",
        "partOf Range Material",
        "Material SubClassOf Continuant",
        "Process SubClassOf Occurrent",
        "DisjointClasses: Continuant, Occurrent",
        "Cell SubClassOf Material",
    )


@pytest.fixture
def tree_reasoner(tree_ontology):
    """An ExpressionMaterializingReasoner over the tree ontology."""
    with ExpressionMaterializingReasoner(tree_ontology) as reasoner:
        yield reasoner
