"""Ontology object model and Manchester-style syntax for pyEMR.

Entities, class expressions and axioms are immutable AST nodes. They hash and
compare structurally, so they can be used as set members and dict keys, and
``str()`` renders each of them back into the textual syntax accepted by
``parse_class_expression`` and ``parse_axiom``.

Class expression grammar (precedence from low to high)::

    expr      ::= or_expr
    or_expr   ::= and_expr ( 'or' and_expr )*
    and_expr  ::= unary ( 'and' unary )*
    unary     ::= 'not' unary
                | IDENT ( 'some' | 'only' ) unary
                | '(' expr ')'
                | IDENT

Axiom forms::

    C SubClassOf D
    C EquivalentTo D [EquivalentTo E ...]
    DisjointClasses: C, D [, E ...]
    R Domain C
    R Range C
    R SubPropertyOf S
    Transitive: R
    Class: A
    ObjectProperty: R
    A Label "text"
    A Annotation prop "text"

Annotation values are quoted and escaped like JSON strings.
"""

from __future__ import annotations

import json
import re
from collections.abc import Iterator
from dataclasses import dataclass
from typing import Union

THING_IRI = "owl:Thing"
NOTHING_IRI = "owl:Nothing"
RDFS_LABEL = "rdfs:label"


def short_form(iri: str) -> str:
    """Return the fragment after the last ``#``, else after the last ``/``."""
    for sep in ("#", "/"):
        idx = iri.rfind(sep)
        if idx != -1 and idx < len(iri) - 1:
            return iri[idx + 1 :]
    return iri


def _wrap(expr: object) -> str:
    """Render *expr*, parenthesized unless it is a named class."""
    if isinstance(expr, Class):
        return str(expr)
    return f"({expr})"


# -------------------------------------------------------------------
# Entities
# -------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Class:
    """A named class (concept) identified by its IRI."""

    iri: str

    def __str__(self) -> str:
        return self.iri

    @property
    def short_form(self) -> str:
        return short_form(self.iri)

    @property
    def is_builtin(self) -> bool:
        """True for ``owl:Thing`` and ``owl:Nothing``."""
        return self.iri in (THING_IRI, NOTHING_IRI)


@dataclass(frozen=True, slots=True)
class SyntheticClass(Class):
    """A named class minted to stand for an existential expression.

    Equality compares the concrete type, so a synthetic class never equals an
    ordinary ``Class`` with the same IRI.
    """


@dataclass(frozen=True, slots=True)
class ObjectProperty:
    """A named binary relation identified by its IRI."""

    iri: str

    def __str__(self) -> str:
        return self.iri

    @property
    def short_form(self) -> str:
        return short_form(self.iri)


THING = Class(THING_IRI)
NOTHING = Class(NOTHING_IRI)


# -------------------------------------------------------------------
# Anonymous class expressions
# -------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ObjectSomeValuesFrom:
    """Existential restriction ``property some filler``."""

    property: ObjectProperty
    filler: ClassExpression

    def __str__(self) -> str:
        return f"{self.property} some {_wrap(self.filler)}"


@dataclass(frozen=True, slots=True)
class ObjectAllValuesFrom:
    """Universal restriction ``property only filler``."""

    property: ObjectProperty
    filler: ClassExpression

    def __str__(self) -> str:
        return f"{self.property} only {_wrap(self.filler)}"


@dataclass(frozen=True, slots=True)
class ObjectIntersectionOf:
    operands: frozenset[ClassExpression]

    def __str__(self) -> str:
        return " and ".join(sorted(_wrap(o) for o in self.operands))


@dataclass(frozen=True, slots=True)
class ObjectUnionOf:
    operands: frozenset[ClassExpression]

    def __str__(self) -> str:
        return " or ".join(sorted(_wrap(o) for o in self.operands))


@dataclass(frozen=True, slots=True)
class ObjectComplementOf:
    operand: ClassExpression

    def __str__(self) -> str:
        return f"not {_wrap(self.operand)}"


ClassExpression = Union[
    Class,
    ObjectSomeValuesFrom,
    ObjectAllValuesFrom,
    ObjectIntersectionOf,
    ObjectUnionOf,
    ObjectComplementOf,
]


# -------------------------------------------------------------------
# Axioms
# -------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Declaration:
    entity: Class | ObjectProperty

    def __str__(self) -> str:
        if isinstance(self.entity, ObjectProperty):
            return f"ObjectProperty: {self.entity}"
        return f"Class: {self.entity}"


@dataclass(frozen=True, slots=True)
class SubClassOf:
    sub: ClassExpression
    sup: ClassExpression

    def __str__(self) -> str:
        return f"{_wrap(self.sub)} SubClassOf {_wrap(self.sup)}"


@dataclass(frozen=True, slots=True)
class EquivalentClasses:
    operands: frozenset[ClassExpression]

    def __str__(self) -> str:
        return " EquivalentTo ".join(sorted(_wrap(o) for o in self.operands))


@dataclass(frozen=True, slots=True)
class DisjointClasses:
    operands: frozenset[ClassExpression]

    def __str__(self) -> str:
        return "DisjointClasses: " + ", ".join(sorted(_wrap(o) for o in self.operands))


@dataclass(frozen=True, slots=True)
class ObjectPropertyDomain:
    property: ObjectProperty
    domain: ClassExpression

    def __str__(self) -> str:
        return f"{self.property} Domain {_wrap(self.domain)}"


@dataclass(frozen=True, slots=True)
class ObjectPropertyRange:
    property: ObjectProperty
    range: ClassExpression

    def __str__(self) -> str:
        return f"{self.property} Range {_wrap(self.range)}"


@dataclass(frozen=True, slots=True)
class SubObjectPropertyOf:
    sub: ObjectProperty
    sup: ObjectProperty

    def __str__(self) -> str:
        return f"{self.sub} SubPropertyOf {self.sup}"


@dataclass(frozen=True, slots=True)
class TransitiveObjectProperty:
    property: ObjectProperty

    def __str__(self) -> str:
        return f"Transitive: {self.property}"


@dataclass(frozen=True, slots=True)
class AnnotationAssertion:
    """An annotation on an entity IRI; ``rdfs:label`` by default."""

    subject: str
    value: str
    property: str = RDFS_LABEL

    def __str__(self) -> str:
        # JSON string quoting escapes quotes, backslashes and newlines
        value = json.dumps(self.value, ensure_ascii=False)
        if self.property == RDFS_LABEL:
            return f"{self.subject} Label {value}"
        return f"{self.subject} Annotation {self.property} {value}"


Axiom = Union[
    Declaration,
    SubClassOf,
    EquivalentClasses,
    DisjointClasses,
    ObjectPropertyDomain,
    ObjectPropertyRange,
    SubObjectPropertyOf,
    TransitiveObjectProperty,
    AnnotationAssertion,
]

AXIOM_TYPES: tuple[type, ...] = (
    Declaration,
    SubClassOf,
    EquivalentClasses,
    DisjointClasses,
    ObjectPropertyDomain,
    ObjectPropertyRange,
    SubObjectPropertyOf,
    TransitiveObjectProperty,
    AnnotationAssertion,
)


# -------------------------------------------------------------------
# Constructors and signature helpers
# -------------------------------------------------------------------


def named_class(iri: str) -> Class:
    """Return the class for *iri*, mapping Thing/Nothing to the built-ins."""
    if iri in ("Thing", THING_IRI):
        return THING
    if iri in ("Nothing", NOTHING_IRI):
        return NOTHING
    return Class(iri)


def some(prop: ObjectProperty | str, filler: ClassExpression | str) -> ObjectSomeValuesFrom:
    """Build ``prop some filler``; strings are taken as IRIs."""
    if isinstance(prop, str):
        prop = ObjectProperty(prop)
    if isinstance(filler, str):
        filler = named_class(filler)
    return ObjectSomeValuesFrom(prop, filler)


def equivalent(*exprs: ClassExpression) -> EquivalentClasses:
    return EquivalentClasses(frozenset(exprs))


def disjoint(*exprs: ClassExpression) -> DisjointClasses:
    return DisjointClasses(frozenset(exprs))


def entities_in(obj: object) -> Iterator[Class | ObjectProperty]:
    """Yield every named class and object property mentioned by *obj*."""
    if isinstance(obj, (Class, ObjectProperty)):
        yield obj
    elif isinstance(obj, (ObjectSomeValuesFrom, ObjectAllValuesFrom)):
        yield obj.property
        yield from entities_in(obj.filler)
    elif isinstance(obj, (ObjectIntersectionOf, ObjectUnionOf, EquivalentClasses, DisjointClasses)):
        for operand in obj.operands:
            yield from entities_in(operand)
    elif isinstance(obj, ObjectComplementOf):
        yield from entities_in(obj.operand)
    elif isinstance(obj, Declaration):
        yield obj.entity
    elif isinstance(obj, (SubClassOf, SubObjectPropertyOf)):
        yield from entities_in(obj.sub)
        yield from entities_in(obj.sup)
    elif isinstance(obj, ObjectPropertyDomain):
        yield obj.property
        yield from entities_in(obj.domain)
    elif isinstance(obj, ObjectPropertyRange):
        yield obj.property
        yield from entities_in(obj.range)
    elif isinstance(obj, TransitiveObjectProperty):
        yield obj.property
    # AnnotationAssertion subjects are bare IRIs, not entities


# -------------------------------------------------------------------
# Parsing
# -------------------------------------------------------------------

_TOKEN_RE = re.compile(r"\(|\)|,|[^\s(),]+")
_ANNOTATION_RE = re.compile(
    r'^(\S+)\s+(?:Label|Annotation\s+(\S+))\s+("(?:[^"\\]|\\.)*")$', re.DOTALL
)
_KEYWORDS = frozenset({"some", "only", "and", "or", "not"})
_PUNCTUATION = frozenset({"(", ")", ","})


def _tokenize(s: str) -> list[str]:
    return _TOKEN_RE.findall(s)


def _combine(kind: type, operands: list[ClassExpression]) -> ClassExpression:
    """Flatten nested operands of the same *kind* into one n-ary node."""
    flat: set[ClassExpression] = set()
    for operand in operands:
        if isinstance(operand, kind):
            flat.update(operand.operands)  # type: ignore[attr-defined]
        else:
            flat.add(operand)
    if len(flat) == 1:
        return next(iter(flat))
    return kind(frozenset(flat))


class _ExpressionParser:
    """Recursive descent over a token list."""

    def __init__(self, tokens: list[str], source: str) -> None:
        self.tokens = tokens
        self.source = source
        self.pos = 0

    def peek(self) -> str | None:
        return self.tokens[self.pos] if self.pos < len(self.tokens) else None

    def advance(self) -> str:
        tok = self.peek()
        if tok is None:
            raise ValueError(f"Unexpected end of expression in: {self.source!r}")
        self.pos += 1
        return tok

    def parse(self) -> ClassExpression:
        expr = self._or()
        if self.pos != len(self.tokens):
            raise ValueError(f"Unexpected token {self.peek()!r} in: {self.source!r}")
        return expr

    def _or(self) -> ClassExpression:
        operands = [self._and()]
        while self.peek() == "or":
            self.advance()
            operands.append(self._and())
        return operands[0] if len(operands) == 1 else _combine(ObjectUnionOf, operands)

    def _and(self) -> ClassExpression:
        operands = [self._unary()]
        while self.peek() == "and":
            self.advance()
            operands.append(self._unary())
        return operands[0] if len(operands) == 1 else _combine(ObjectIntersectionOf, operands)

    def _unary(self) -> ClassExpression:
        tok = self.advance()
        if tok == "not":
            return ObjectComplementOf(self._unary())
        if tok == "(":
            expr = self._or()
            if self.advance() != ")":
                raise ValueError(f"Expected ')' in: {self.source!r}")
            return expr
        if tok in _KEYWORDS or tok in _PUNCTUATION:
            raise ValueError(f"Unexpected token {tok!r} in: {self.source!r}")
        if self.peek() in ("some", "only"):
            quantifier = self.advance()
            prop = ObjectProperty(tok)
            filler = self._unary()
            if quantifier == "some":
                return ObjectSomeValuesFrom(prop, filler)
            return ObjectAllValuesFrom(prop, filler)
        return named_class(tok)


def _parse_tokens(tokens: list[str], source: str) -> ClassExpression:
    if not tokens:
        raise ValueError(f"Missing class expression in: {source!r}")
    return _ExpressionParser(tokens, source).parse()


def _split_tokens(tokens: list[str], separator: str) -> list[list[str]]:
    """Split *tokens* on *separator* occurring outside parentheses."""
    parts: list[list[str]] = [[]]
    depth = 0
    for tok in tokens:
        if tok == "(":
            depth += 1
        elif tok == ")":
            depth -= 1
        if depth == 0 and tok == separator:
            parts.append([])
        else:
            parts[-1].append(tok)
    return parts


def _single_identifier(tokens: list[str], source: str) -> str:
    if len(tokens) != 1 or tokens[0] in _KEYWORDS or tokens[0] in _PUNCTUATION:
        raise ValueError(f"Expected a single identifier in: {source!r}")
    return tokens[0]


def parse_class_expression(s: str) -> ClassExpression:
    """Parse a string into a class expression AST.

    Examples:
        >>> parse_class_expression("partOf some Tree")
        ObjectSomeValuesFrom(property=ObjectProperty(iri='partOf'), filler=Class(iri='Tree'))
    """
    s = s.strip()
    if not s:
        raise ValueError("Cannot parse empty class expression")
    return _parse_tokens(_tokenize(s), s)


def parse_axiom(s: str) -> Axiom:
    """Parse one axiom in the textual syntax described in the module docstring."""
    s = s.strip()
    if not s:
        raise ValueError("Cannot parse empty axiom")

    m = _ANNOTATION_RE.match(s)
    if m:
        return AnnotationAssertion(
            subject=m.group(1),
            value=json.loads(m.group(3), strict=False),
            property=m.group(2) or RDFS_LABEL,
        )

    tokens = _tokenize(s)
    head, rest = tokens[0], tokens[1:]

    if head == "Class:":
        return Declaration(named_class(_single_identifier(rest, s)))
    if head == "ObjectProperty:":
        return Declaration(ObjectProperty(_single_identifier(rest, s)))
    if head == "Transitive:":
        return TransitiveObjectProperty(ObjectProperty(_single_identifier(rest, s)))
    if head == "DisjointClasses:":
        parts = _split_tokens(rest, ",")
        if len(parts) < 2:
            raise ValueError(f"DisjointClasses needs at least two operands: {s!r}")
        return DisjointClasses(frozenset(_parse_tokens(p, s) for p in parts))

    if len(rest) >= 2 and rest[0] in ("Domain", "Range"):
        prop = ObjectProperty(_single_identifier([head], s))
        expr = _parse_tokens(rest[1:], s)
        if rest[0] == "Domain":
            return ObjectPropertyDomain(prop, expr)
        return ObjectPropertyRange(prop, expr)
    if len(rest) == 2 and rest[0] == "SubPropertyOf":
        return SubObjectPropertyOf(
            ObjectProperty(_single_identifier([head], s)),
            ObjectProperty(_single_identifier(rest[1:], s)),
        )

    parts = _split_tokens(tokens, "SubClassOf")
    if len(parts) == 2:
        return SubClassOf(_parse_tokens(parts[0], s), _parse_tokens(parts[1], s))
    if len(parts) > 2:
        raise ValueError(f"More than one SubClassOf in: {s!r}")

    parts = _split_tokens(tokens, "EquivalentTo")
    if len(parts) >= 2:
        operands = frozenset(_parse_tokens(p, s) for p in parts)
        if len(operands) < 2:
            raise ValueError(f"EquivalentTo needs two distinct operands: {s!r}")
        return EquivalentClasses(operands)

    raise ValueError(f"Unrecognized axiom: {s!r}")
