"""Expression registry: synthetic classes standing for existential expressions.

Each registered ``R some C`` gets a deterministic ``SyntheticClass``. The
registry holds both directions of the correspondence and only ever grows.

Synthetic IRIs are ``<filler IRI>__<escaped relation IRI>``. The relation
part is percent-encoded with ``_`` escaped as well, so it never contains
``__`` and the last ``__`` in a synthetic IRI always separates the two parts.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from urllib.parse import quote, unquote

from pyemr.syntax import Class, ObjectProperty, ObjectSomeValuesFrom, SyntheticClass

logger = logging.getLogger(__name__)

_SEPARATOR = "__"


def _escape(iri: str) -> str:
    return quote(iri, safe="").replace("_", "%5F")


def synthetic_iri(relation: ObjectProperty, filler: Class) -> str:
    """IRI of the synthetic class for ``relation some filler``."""
    return f"{filler.iri}{_SEPARATOR}{_escape(relation.iri)}"


def split_synthetic_iri(iri: str) -> tuple[str, str]:
    """Inverse of ``synthetic_iri``: return ``(relation_iri, filler_iri)``."""
    filler, sep, relation = iri.rpartition(_SEPARATOR)
    if not sep:
        raise ValueError(f"Not a synthetic IRI: {iri!r}")
    return unquote(relation), filler


def synthetic_label(relation: ObjectProperty, filler: Class) -> str:
    """Human-readable label, e.g. ``"partOf Tree"``."""
    return f"{relation.short_form} {filler.short_form}"


class ExpressionRegistry:
    """Bijection between synthetic classes and ``R some C`` expressions.

    The registry only records names. Emitting the axioms that define a
    synthetic class is up to whoever registered it, so one registry can back
    several reasoners without their expanded ontologies leaking into each
    other.
    """

    def __init__(self) -> None:
        self._by_class: dict[SyntheticClass, ObjectSomeValuesFrom] = {}
        self._by_expression: dict[ObjectSomeValuesFrom, SyntheticClass] = {}

    def __repr__(self) -> str:
        return f"ExpressionRegistry(entries={len(self._by_class)})"

    def __len__(self) -> int:
        return len(self._by_class)

    def __contains__(self, item: object) -> bool:
        return item in self._by_class or item in self._by_expression

    def register(self, expr: ObjectSomeValuesFrom) -> SyntheticClass:
        """Return the synthetic class for *expr*, minting it on first use.

        Raises:
            ValueError: If the filler is not a plain named class.
        """
        existing = self._by_expression.get(expr)
        if existing is not None:
            return existing
        filler = expr.filler
        if type(filler) is not Class or filler in self._by_class:
            raise ValueError(f"Filler must be a plain named class: {expr}")

        cls = SyntheticClass(synthetic_iri(expr.property, filler))
        self._by_class[cls] = expr
        self._by_expression[expr] = cls
        logger.debug("Registered %s for %s", cls, expr)
        return cls

    def lookup_expression(self, cls: Class) -> ObjectSomeValuesFrom | None:
        return self._by_class.get(cls)  # type: ignore[arg-type]

    def lookup_concept(self, expr: ObjectSomeValuesFrom) -> SyntheticClass | None:
        return self._by_expression.get(expr)

    def is_synthetic(self, cls: Class) -> bool:
        """True if *cls* is a synthetic class, by type or as a registry key."""
        return isinstance(cls, SyntheticClass) or cls in self._by_class

    def items(self) -> Iterator[tuple[SyntheticClass, ObjectSomeValuesFrom]]:
        return iter(list(self._by_class.items()))

    def expressions_for(self, relation: ObjectProperty) -> list[ObjectSomeValuesFrom]:
        """Registered expressions over *relation*, in registration order."""
        return [e for e in self._by_expression if e.property == relation]
