"""OWL 2 mapping between pyEMR axioms and rdflib graphs.

Axioms become triples following the OWL 2 mapping to RDF graphs: restrictions
and boolean class expressions are blank nodes, n-ary lists are RDF
collections. Anything rdflib can read or write (Turtle, RDF/XML, N-Triples,
JSON-LD) can therefore hold a pyEMR ontology. Equivalences over more than
two operands are written as a chain of pairwise ``owl:equivalentClass``
triples and read back pairwise.

Names without a URI scheme (``Leaf``, ``partOf``) are written under
``LOCAL`` and read back bare, and the ``owl:``/``rdf:``/``rdfs:`` CURIEs used
for built-ins map to the W3C namespaces.

Constructs outside the supported subset (data properties, cardinality and
value restrictions, inverse properties, ...) are skipped with a warning when
reading.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable

from rdflib import BNode, Graph, Literal, Namespace, URIRef
from rdflib.collection import Collection
from rdflib.namespace import OWL, RDF, RDFS
from rdflib.term import Node

from pyemr.syntax import (
    RDFS_LABEL,
    AnnotationAssertion,
    Axiom,
    Class,
    ClassExpression,
    Declaration,
    DisjointClasses,
    EquivalentClasses,
    ObjectAllValuesFrom,
    ObjectComplementOf,
    ObjectIntersectionOf,
    ObjectProperty,
    ObjectPropertyDomain,
    ObjectPropertyRange,
    ObjectSomeValuesFrom,
    ObjectUnionOf,
    SubClassOf,
    SubObjectPropertyOf,
    TransitiveObjectProperty,
    named_class,
)

logger = logging.getLogger(__name__)

LOCAL = Namespace("urn:pyemr:")

_PREFIXES = {"owl": OWL, "rdf": RDF, "rdfs": RDFS}
_SCHEME_RE = re.compile(r"^[A-Za-z][A-Za-z0-9+.-]*:")


class UnsupportedConstructError(ValueError):
    """A graph pattern with no counterpart in the pyEMR object model."""


# -------------------------------------------------------------------
# IRIs
# -------------------------------------------------------------------


def to_node(iri: str) -> URIRef:
    """The RDF node for an entity or ontology IRI."""
    prefix, sep, local = iri.partition(":")
    if sep and prefix in _PREFIXES:
        return URIRef(f"{_PREFIXES[prefix]}{local}")
    if _SCHEME_RE.match(iri):
        return URIRef(iri)
    return URIRef(f"{LOCAL}{iri}")


def from_node(node: Node) -> str:
    """Inverse of ``to_node``.

    Raises:
        UnsupportedConstructError: If *node* is not an IRI.
    """
    if not isinstance(node, URIRef):
        raise UnsupportedConstructError(f"Expected an IRI, got {node!r}")
    iri = str(node)
    for prefix, namespace in _PREFIXES.items():
        if iri.startswith(str(namespace)):
            return f"{prefix}:{iri[len(namespace):]}"
    if iri.startswith(str(LOCAL)):
        return iri[len(LOCAL):]
    return iri


# -------------------------------------------------------------------
# Writing
# -------------------------------------------------------------------


class _Writer:
    def __init__(self, graph: Graph) -> None:
        self.graph = graph

    def expression(self, ce: ClassExpression) -> Node:
        graph = self.graph
        if isinstance(ce, Class):
            return to_node(ce.iri)
        node = BNode()
        if isinstance(ce, (ObjectSomeValuesFrom, ObjectAllValuesFrom)):
            graph.add((node, RDF.type, OWL.Restriction))
            graph.add((node, OWL.onProperty, to_node(ce.property.iri)))
            predicate = (
                OWL.someValuesFrom if isinstance(ce, ObjectSomeValuesFrom) else OWL.allValuesFrom
            )
            graph.add((node, predicate, self.expression(ce.filler)))
        elif isinstance(ce, (ObjectIntersectionOf, ObjectUnionOf)):
            graph.add((node, RDF.type, OWL.Class))
            predicate = OWL.intersectionOf if isinstance(ce, ObjectIntersectionOf) else OWL.unionOf
            graph.add((node, predicate, self.collection(ce.operands)))
        elif isinstance(ce, ObjectComplementOf):
            graph.add((node, RDF.type, OWL.Class))
            graph.add((node, OWL.complementOf, self.expression(ce.operand)))
        else:
            raise TypeError(f"Not a class expression: {ce!r}")
        return node

    def collection(self, operands: Iterable[ClassExpression]) -> Node:
        head = BNode()
        Collection(self.graph, head, [self.expression(o) for o in sorted(operands, key=str)])
        return head

    def axiom(self, axiom: Axiom) -> None:
        graph = self.graph
        if isinstance(axiom, Declaration):
            kind = OWL.ObjectProperty if isinstance(axiom.entity, ObjectProperty) else OWL.Class
            graph.add((to_node(axiom.entity.iri), RDF.type, kind))
        elif isinstance(axiom, SubClassOf):
            graph.add((self.expression(axiom.sub), RDFS.subClassOf, self.expression(axiom.sup)))
        elif isinstance(axiom, EquivalentClasses):
            operands = sorted(axiom.operands, key=str)
            for left, right in zip(operands, operands[1:]):
                graph.add((self.expression(left), OWL.equivalentClass, self.expression(right)))
        elif isinstance(axiom, DisjointClasses):
            if len(axiom.operands) == 2:
                left, right = sorted(axiom.operands, key=str)
                graph.add((self.expression(left), OWL.disjointWith, self.expression(right)))
            else:
                node = BNode()
                graph.add((node, RDF.type, OWL.AllDisjointClasses))
                graph.add((node, OWL.members, self.collection(axiom.operands)))
        elif isinstance(axiom, ObjectPropertyDomain):
            graph.add((to_node(axiom.property.iri), RDFS.domain, self.expression(axiom.domain)))
        elif isinstance(axiom, ObjectPropertyRange):
            graph.add((to_node(axiom.property.iri), RDFS.range, self.expression(axiom.range)))
        elif isinstance(axiom, SubObjectPropertyOf):
            graph.add((to_node(axiom.sub.iri), RDFS.subPropertyOf, to_node(axiom.sup.iri)))
        elif isinstance(axiom, TransitiveObjectProperty):
            graph.add((to_node(axiom.property.iri), RDF.type, OWL.TransitiveProperty))
        elif isinstance(axiom, AnnotationAssertion):
            prop = to_node(axiom.property)
            if axiom.property != RDFS_LABEL:
                graph.add((prop, RDF.type, OWL.AnnotationProperty))
            graph.add((to_node(axiom.subject), prop, Literal(axiom.value)))
        else:
            raise TypeError(f"Not an axiom: {axiom!r}")


def write_graph(
    iri: str | None,
    axioms: Iterable[Axiom],
    imports: Iterable[str] = (),
) -> Graph:
    """Build the RDF graph of an ontology.

    *imports* are ``owl:imports`` targets, written as given (an ontology IRI
    or a document reference).
    """
    graph = Graph()
    graph.bind("owl", OWL)
    graph.bind("local", LOCAL)
    ontology = to_node(iri) if iri is not None else BNode()
    graph.add((ontology, RDF.type, OWL.Ontology))
    for ref in imports:
        graph.add((ontology, OWL.imports, URIRef(ref)))
    writer = _Writer(graph)
    for axiom in axioms:
        writer.axiom(axiom)
    logger.debug("Wrote %d triples for %s", len(graph), iri)
    return graph


# -------------------------------------------------------------------
# Reading
# -------------------------------------------------------------------


def _pairs(graph: Graph, predicate: URIRef) -> list[tuple[Node, Node]]:
    return sorted(graph.subject_objects(predicate), key=lambda so: (str(so[0]), str(so[1])))


def _typed(graph: Graph, kind: URIRef) -> list[Node]:
    return sorted(graph.subjects(RDF.type, kind), key=str)


class _Reader:
    def __init__(self, graph: Graph) -> None:
        self.graph = graph
        self.axioms: list[Axiom] = []
        self.skipped = 0

    def object_property(self, node: Node) -> ObjectProperty:
        graph = self.graph
        if (node, RDF.type, OWL.DatatypeProperty) in graph or (
            node, RDF.type, OWL.AnnotationProperty
        ) in graph:
            raise UnsupportedConstructError(f"Not an object property: {node}")
        return ObjectProperty(from_node(node))

    def expression(self, node: Node) -> ClassExpression:
        graph = self.graph
        if isinstance(node, URIRef):
            return named_class(from_node(node))
        if not isinstance(node, BNode):
            raise UnsupportedConstructError(f"Not a class expression: {node!r}")

        prop = graph.value(node, OWL.onProperty)
        if prop is not None:
            filler = graph.value(node, OWL.someValuesFrom)
            if filler is not None:
                return ObjectSomeValuesFrom(self.object_property(prop), self.expression(filler))
            filler = graph.value(node, OWL.allValuesFrom)
            if filler is not None:
                return ObjectAllValuesFrom(self.object_property(prop), self.expression(filler))
            raise UnsupportedConstructError(f"Unsupported restriction on {prop}")

        for predicate, kind in ((OWL.intersectionOf, ObjectIntersectionOf),
                                (OWL.unionOf, ObjectUnionOf)):
            head = graph.value(node, predicate)
            if head is not None:
                operands = self.collection(head)
                if len(operands) == 1:
                    return next(iter(operands))
                return kind(operands)

        operand = graph.value(node, OWL.complementOf)
        if operand is not None:
            return ObjectComplementOf(self.expression(operand))
        raise UnsupportedConstructError(f"Unsupported class expression {node}")

    def collection(self, head: Node | None) -> frozenset[ClassExpression]:
        if head is None:
            raise UnsupportedConstructError("Missing list")
        operands = frozenset(self.expression(n) for n in Collection(self.graph, head))
        if not operands:
            raise UnsupportedConstructError(f"Empty list {head}")
        return operands

    def add(self, build, *nodes: Node) -> None:
        """Append ``build(*nodes)``, skipping it if it uses unsupported constructs."""
        try:
            axiom = build(*nodes)
        except UnsupportedConstructError as e:
            self.skipped += 1
            logger.warning("Skipping axiom outside the supported OWL subset: %s", e)
            return
        if axiom is not None:
            self.axioms.append(axiom)

    def read(self) -> list[Axiom]:
        graph = self.graph
        for node in _typed(graph, OWL.Class):
            if isinstance(node, URIRef):
                self.add(lambda n: Declaration(named_class(from_node(n))), node)
        for node in _typed(graph, OWL.ObjectProperty):
            self.add(lambda n: Declaration(ObjectProperty(from_node(n))), node)
        for node in _typed(graph, OWL.TransitiveProperty):
            self.add(lambda n: TransitiveObjectProperty(self.object_property(n)), node)

        for s, o in _pairs(graph, RDFS.subClassOf):
            self.add(lambda a, b: SubClassOf(self.expression(a), self.expression(b)), s, o)
        for s, o in _pairs(graph, OWL.equivalentClass):
            self.add(self._equivalence, s, o)
        for s, o in _pairs(graph, OWL.disjointWith):
            self.add(lambda a, b: DisjointClasses(
                frozenset({self.expression(a), self.expression(b)})
            ), s, o)
        for node in _typed(graph, OWL.AllDisjointClasses):
            self.add(lambda n: DisjointClasses(self.collection(graph.value(n, OWL.members))), node)

        for s, o in _pairs(graph, RDFS.domain):
            self.add(lambda p, c: ObjectPropertyDomain(self.object_property(p), self.expression(c)),
                     s, o)
        for s, o in _pairs(graph, RDFS.range):
            self.add(lambda p, c: ObjectPropertyRange(self.object_property(p), self.expression(c)),
                     s, o)
        for s, o in _pairs(graph, RDFS.subPropertyOf):
            self.add(lambda p, q: SubObjectPropertyOf(
                self.object_property(p), self.object_property(q)
            ), s, o)

        annotation_properties = [RDFS.label] + [
            p for p in _typed(graph, OWL.AnnotationProperty) if p != RDFS.label
        ]
        for prop in annotation_properties:
            for s, o in _pairs(graph, prop):
                self.add(self._annotation, prop, s, o)
        return self.axioms

    def _equivalence(self, a: Node, b: Node) -> EquivalentClasses | None:
        left, right = self.expression(a), self.expression(b)
        if left == right:
            return None
        return EquivalentClasses(frozenset({left, right}))

    def _annotation(self, prop: Node, subject: Node, value: Node) -> AnnotationAssertion:
        if not isinstance(value, Literal):
            raise UnsupportedConstructError(f"Annotation value {value!r} is not a literal")
        return AnnotationAssertion(
            subject=from_node(subject), value=str(value), property=from_node(prop)
        )


def read_graph(graph: Graph) -> tuple[str | None, list[str], list[Axiom]]:
    """Extract ``(ontology IRI, import references, axioms)`` from *graph*.

    The first ``owl:Ontology`` node names the ontology; a graph without one
    yields an anonymous ontology with no imports.
    """
    iri: str | None = None
    refs: list[str] = []
    headers = _typed(graph, OWL.Ontology)
    if len(headers) > 1:
        logger.warning("Graph declares %d ontologies; using %s", len(headers), headers[0])
    if headers:
        header = headers[0]
        if isinstance(header, URIRef):
            iri = from_node(header)
        refs = [from_node(o) for o in sorted(graph.objects(header, OWL.imports), key=str)]

    reader = _Reader(graph)
    axioms = reader.read()
    logger.debug(
        "Read %d axioms from %d triples (%d skipped)", len(axioms), len(graph), reader.skipped
    )
    return iri, refs, axioms
