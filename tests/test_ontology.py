"""Tests for pyemr.ontology — Ontology."""

import logging
import tempfile
from pathlib import Path

import pytest
from rdflib import BNode, Graph, URIRef
from rdflib.namespace import OWL, RDF, RDFS

from pyemr.ontology import Ontology, generate_iri
from pyemr.rdf import LOCAL
from pyemr.syntax import (
    Class,
    DisjointClasses,
    ObjectProperty,
    SubClassOf,
    parse_axiom,
)

from conftest import make_ontology

UNSUPPORTED_TTL = """
@prefix ex: <http://example.org/> .
@prefix owl: <http://www.w3.org/2002/07/owl#> .
@prefix rdfs: <http://www.w3.org/2000/01/rdf-schema#> .
@prefix xsd: <http://www.w3.org/2001/XMLSchema#> .

ex:A rdfs:subClassOf ex:B .
ex:A rdfs:subClassOf [ a owl:Restriction ; owl:onProperty ex:R ; owl:hasValue ex:x ] .
ex:age a owl:DatatypeProperty ; rdfs:range xsd:integer .
"""

IMPORTING_TTL = """
@prefix owl: <http://www.w3.org/2002/07/owl#> .
@prefix rdfs: <http://www.w3.org/2000/01/rdf-schema#> .

<http://example.org/lower> a owl:Ontology ;
    owl:imports <http://example.org/upper> .

<http://example.org/Leaf> rdfs:subClassOf <http://example.org/Tree> .
"""


class TestConstruction:
    def test_empty(self, empty_ontology):
        assert len(empty_ontology) == 0
        assert empty_ontology.imports == ()

    def test_with_axioms(self, tree_ontology):
        assert len(tree_ontology) == 6
        assert parse_axiom("Branch SubClassOf Tree") in tree_ontology

    def test_rejects_non_axiom(self):
        with pytest.raises(TypeError):
            Ontology(axioms=["Branch SubClassOf Tree"])

    def test_generate_iri_unique(self):
        assert generate_iri() != generate_iri()
        assert generate_iri().startswith("urn:uuid:")


class TestMutation:
    def test_add_axiom_reports_novelty(self, empty_ontology):
        axiom = parse_axiom("A SubClassOf B")
        assert empty_ontology.add_axiom(axiom)
        assert not empty_ontology.add_axiom(axiom)
        assert len(empty_ontology) == 1

    def test_add_axioms_counts_new(self, empty_ontology):
        axioms = [parse_axiom("A SubClassOf B"), parse_axiom("B SubClassOf C")]
        assert empty_ontology.add_axioms(axioms) == 2
        assert empty_ontology.add_axioms(axioms) == 0

    def test_remove_axiom(self, empty_ontology):
        axiom = parse_axiom("A SubClassOf B")
        empty_ontology.add_axiom(axiom)
        assert empty_ontology.remove_axiom(axiom)
        assert not empty_ontology.remove_axiom(axiom)

    def test_insertion_order(self, empty_ontology):
        texts = ["C SubClassOf D", "A SubClassOf B", "Class: E"]
        for t in texts:
            empty_ontology.add_axiom(parse_axiom(t))
        assert [str(a) for a in empty_ontology] == texts

    def test_change_count(self, empty_ontology):
        start = empty_ontology.change_count
        empty_ontology.add_axiom(parse_axiom("A SubClassOf B"))
        empty_ontology.add_axiom(parse_axiom("A SubClassOf B"))
        assert empty_ontology.change_count == start + 1

    def test_change_count_sees_imports(self, empty_ontology):
        upper = Ontology(iri="http://example.org/upper")
        empty_ontology.add_import(upper)
        before = empty_ontology.change_count
        upper.add_axiom(parse_axiom("A SubClassOf B"))
        assert empty_ontology.change_count == before + 1


class TestImports:
    def test_add_import(self, empty_ontology):
        upper = Ontology(iri="http://example.org/upper")
        assert empty_ontology.add_import(upper)
        assert not empty_ontology.add_import(upper)
        assert not empty_ontology.add_import(empty_ontology)
        assert empty_ontology.imports == (upper,)

    def test_axioms_with_imports(self):
        upper = make_ontology("Tree SubClassOf Plant", iri="http://example.org/upper")
        lower = make_ontology("Branch SubClassOf Tree")
        lower.add_import(upper)
        assert len(lower.axioms()) == 1
        assert len(lower.axioms(include_imports=True)) == 2
        assert lower.contains_axiom(parse_axiom("Tree SubClassOf Plant"), include_imports=True)
        assert not lower.contains_axiom(parse_axiom("Tree SubClassOf Plant"))

    def test_cyclic_imports(self):
        a = make_ontology("A SubClassOf B", iri="http://example.org/a")
        b = make_ontology("B SubClassOf C", iri="http://example.org/b")
        a.add_import(b)
        b.add_import(a)
        assert a.imports_closure() == [a, b]
        assert len(a.axioms(include_imports=True)) == 2


class TestSignature:
    def test_classes_exclude_builtins(self):
        ont = make_ontology("A SubClassOf Thing", "Nothing SubClassOf B")
        assert ont.classes_in_signature() == frozenset({Class("A"), Class("B")})

    def test_classes_in_expressions(self, tree_ontology):
        assert tree_ontology.classes_in_signature() == frozenset(
            {Class("Leaf"), Class("Branch"), Class("Tree")}
        )

    def test_object_properties(self, tree_ontology):
        assert tree_ontology.object_properties_in_signature() == frozenset(
            {ObjectProperty("partOf")}
        )

    def test_signature_with_imports(self):
        upper = make_ontology("R Domain Plant", iri="http://example.org/upper")
        lower = make_ontology("Branch SubClassOf Tree")
        lower.add_import(upper)
        assert Class("Plant") not in lower.classes_in_signature()
        assert Class("Plant") in lower.classes_in_signature(include_imports=True)
        assert lower.object_properties_in_signature() == frozenset()
        assert lower.object_properties_in_signature(include_imports=True) == frozenset(
            {ObjectProperty("R")}
        )

    def test_axioms_of_type(self, range_ontology):
        disjoint = range_ontology.axioms_of_type(DisjointClasses)
        assert len(disjoint) == 1
        subclass = range_ontology.axioms_of_type(SubClassOf, DisjointClasses)
        assert len(subclass) == 4


class TestGraph:
    def test_to_graph(self, tree_ontology):
        graph = tree_ontology.to_graph()
        assert (URIRef("http://example.org/test"), RDF.type, OWL.Ontology) in graph
        assert (LOCAL["Branch"], RDFS.subClassOf, LOCAL["Tree"]) in graph
        assert (LOCAL["partOf"], RDF.type, OWL.ObjectProperty) in graph

    def test_restriction_is_blank_node(self, tree_ontology):
        graph = tree_ontology.to_graph()
        (restriction,) = graph.objects(LOCAL["Leaf"], RDFS.subClassOf)
        assert isinstance(restriction, BNode)
        assert (restriction, RDF.type, OWL.Restriction) in graph
        assert (restriction, OWL.onProperty, LOCAL["partOf"]) in graph
        assert (restriction, OWL.someValuesFrom, LOCAL["Branch"]) in graph

    def test_builtins_map_to_owl(self):
        graph = make_ontology("A SubClassOf Thing").to_graph()
        assert (LOCAL["A"], RDFS.subClassOf, OWL.Thing) in graph

    def test_graph_round_trip(self, tree_ontology, range_ontology):
        for ontology in (tree_ontology, range_ontology):
            restored = Ontology.from_graph(ontology.to_graph())
            assert restored.axioms() == ontology.axioms()
            assert restored.iri == ontology.iri

    @pytest.mark.parametrize("text", [
        "A SubClassOf R some (S some (B or C))",
        "A SubClassOf not (R only B)",
        "A EquivalentTo B and R some C",
        "DisjointClasses: A, B, C",
        "R Domain A",
        "R SubPropertyOf S",
        "Transitive: R",
        'A Label "two\\nlines"',
        'A Annotation rdfs:comment "a comment"',
        "http://example.org/onto#A SubClassOf http://example.org/onto#B",
    ])
    def test_axiom_round_trip(self, text):
        ontology = make_ontology(text)
        assert Ontology.from_graph(ontology.to_graph()).axioms() == ontology.axioms()

    def test_anonymous_ontology(self):
        restored = Ontology.from_graph(make_ontology("A SubClassOf B", iri=None).to_graph())
        assert restored.iri is None
        assert len(restored) == 1

    def test_imports_need_resolver(self):
        ontology = Ontology(iri="http://example.org/lower")
        ontology.add_import(Ontology(iri="http://example.org/upper"))
        with pytest.raises(ValueError, match="resolver"):
            Ontology.from_graph(ontology.to_graph())

    def test_imports_with_resolver(self):
        upper = Ontology(iri="http://example.org/upper")
        lower = Ontology(iri="http://example.org/lower", imports=[upper])
        refs = []

        def resolver(ref):
            refs.append(ref)
            return upper

        restored = Ontology.from_graph(lower.to_graph(), resolver=resolver)
        assert refs == ["http://example.org/upper"]
        assert restored.imports == (upper,)

    def test_unsupported_constructs_skipped(self, caplog):
        graph = Graph()
        graph.parse(data=UNSUPPORTED_TTL, format="turtle")
        with caplog.at_level(logging.WARNING, logger="pyemr.rdf"):
            ontology = Ontology.from_graph(graph)
        assert ontology.axioms() == frozenset({
            SubClassOf(Class("http://example.org/A"), Class("http://example.org/B"))
        })
        assert any("outside the supported OWL subset" in r.message for r in caplog.records)


class TestFiles:
    @pytest.mark.parametrize("name", ["tree.ttl", "tree.owl", "tree.nt"])
    def test_file_round_trip(self, tree_ontology, name):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / name
            tree_ontology.to_file(path)
            restored = Ontology.from_file(path)
        assert restored.axioms() == tree_ontology.axioms()
        assert restored.iri == tree_ontology.iri
        assert restored.location == path.resolve()

    def test_to_file_records_location(self, tree_ontology):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "tree.ttl"
            tree_ontology.to_file(path)
            assert tree_ontology.location == path.resolve()

    def test_in_memory_import_cannot_be_saved(self, tree_ontology):
        tree_ontology.add_import(Ontology(iri="http://example.org/upper"))
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "tree.ttl"
            with pytest.raises(ValueError, match="no file location"):
                tree_ontology.to_file(path)
            assert not path.exists()

    def test_saved_import_round_trips(self, tree_ontology):
        upper = make_ontology("Tree SubClassOf Plant", iri="http://example.org/upper")
        tree_ontology.add_import(upper)
        with tempfile.TemporaryDirectory() as tmp:
            upper.to_file(Path(tmp) / "upper.ttl")
            tree_ontology.to_file(Path(tmp) / "tree.ttl")
            restored = Ontology.from_file(Path(tmp) / "tree.ttl")
        assert [o.iri for o in restored.imports] == ["http://example.org/upper"]
        assert restored.axioms(include_imports=True) == tree_ontology.axioms(include_imports=True)

    def test_imports_relative_to_importer(self):
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            (root / "sub").mkdir()
            upper = make_ontology("Tree SubClassOf Plant", iri="http://example.org/upper")
            upper.to_file(root / "sub" / "upper.ttl")
            lower = make_ontology("Branch SubClassOf Tree", iri="http://example.org/lower")
            lower.add_import(upper)
            lower.to_file(root / "lower.ttl")

            text = (root / "lower.ttl").read_text()
            assert "<sub/upper.ttl>" in text
            assert tmp not in text

            moved = root / "moved"
            moved.mkdir()
            (root / "lower.ttl").rename(moved / "lower.ttl")
            (root / "sub").rename(moved / "sub")
            restored = Ontology.from_file(moved / "lower.ttl")
            assert [o.iri for o in restored.imports] == ["http://example.org/upper"]
            assert len(restored.axioms(include_imports=True)) == 2

    def test_catalog_resolves_import_iris(self):
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            make_ontology("Tree SubClassOf Plant", iri="http://example.org/upper").to_file(
                root / "upper.owl"
            )
            (root / "lower.ttl").write_text(IMPORTING_TTL)
            with pytest.raises(ValueError, match="Cannot resolve import"):
                Ontology.from_file(root / "lower.ttl")
            lower = Ontology.from_file(
                root / "lower.ttl", catalog={"http://example.org/upper": root / "upper.owl"}
            )
        assert [o.iri for o in lower.imports] == ["http://example.org/upper"]
        assert lower.contains_axiom(parse_axiom("Tree SubClassOf Plant"), include_imports=True)

    def test_diamond_imports_loaded_once(self):
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            top = Ontology(iri="http://example.org/top")
            top.to_file(root / "top.ttl")
            left = Ontology(iri="http://example.org/left", imports=[top])
            left.to_file(root / "left.ttl")
            right = Ontology(iri="http://example.org/right", imports=[top])
            right.to_file(root / "right.ttl")
            Ontology(iri="http://example.org/bottom", imports=[left, right]).to_file(
                root / "bottom.ttl"
            )
            bottom = Ontology.from_file(root / "bottom.ttl")
        first, second = sorted(bottom.imports, key=lambda o: o.iri)
        assert first.imports[0] is second.imports[0]

    def test_missing_file(self):
        with pytest.raises(OSError):
            Ontology.from_file("/tmp/no_such_pyemr_ontology.ttl")

    def test_unparseable_file(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "bad.ttl"
            path.write_text("this is { not turtle")
            with pytest.raises(ValueError, match="Cannot parse"):
                Ontology.from_file(path)
