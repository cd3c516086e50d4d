"""Classifier capability contract for pyEMR.

The materializing layer never performs description-logic inference itself. It
talks to a *classifier* through the narrow ``Classifier`` protocol below and
lets every classifier error propagate unchanged. The error taxonomy lives
here so callers can tell transient failures (timeout, interruption) from
structural ones (inconsistency, profile violation, fresh entities).
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from pyemr.ontology import Ontology
    from pyemr.syntax import Axiom, Class, ClassExpression


class BufferingMode(Enum):
    """When ontology changes become visible to a classifier.

    ``BUFFERING``: changes are held as pending until ``flush()``.
    ``NON_BUFFERING``: every query observes the current ontology.
    """

    BUFFERING = "buffering"
    NON_BUFFERING = "non_buffering"


class FreshEntityPolicy(Enum):
    """Whether queries may mention entities outside the signature."""

    ALLOW = "allow"
    DISALLOW = "disallow"


@dataclass
class ReasonerConfiguration:
    """Options handed to a classifier at construction.

    Attributes:
        timeout: Seconds a single computation may run, or None for no limit.
        fresh_entity_policy: How to treat unknown entities in queries.
    """

    timeout: float | None = None
    fresh_entity_policy: FreshEntityPolicy = FreshEntityPolicy.ALLOW


# -------------------------------------------------------------------
# Error taxonomy
# -------------------------------------------------------------------


class ReasonerError(Exception):
    """Base class of every error raised by a classifier."""


class InconsistentOntologyError(ReasonerError):
    """The ontology as a whole is unsatisfiable."""


class ProfileViolationError(ReasonerError):
    """An expression or axiom is outside the classifier's logic fragment."""


class FreshEntityError(ReasonerError):
    """A query mentions entities absent from the classifier's signature."""

    def __init__(self, entities: Iterable[object]) -> None:
        self.entities = frozenset(entities)
        names = ", ".join(sorted(str(e) for e in self.entities))
        super().__init__(f"Entities not in signature: {names}")


class ReasonerTimeoutError(ReasonerError):
    """A computation ran longer than the configured timeout."""


class ReasonerInterruptedError(ReasonerError):
    """A computation was stopped by ``interrupt()``."""


class UnsupportedEntailmentTypeError(ReasonerError):
    """Entailment checking is not available for this axiom type."""


# -------------------------------------------------------------------
# Protocols
# -------------------------------------------------------------------


@runtime_checkable
class Classifier(Protocol):
    """What the materializing layer needs from a classification engine.

    Class-valued queries return flattened sets: every member of every
    equivalence node. ``super_classes`` is strict (the query's own node is
    excluded) and includes ``owl:Thing``; ``sub_classes`` includes
    ``owl:Nothing``.
    """

    supports_range_axioms: bool

    @property
    def buffering_mode(self) -> BufferingMode: ...

    @property
    def root_ontology(self) -> Ontology: ...

    def flush(self) -> None: ...

    def pending_axiom_additions(self) -> frozenset[Axiom]: ...

    def pending_axiom_removals(self) -> frozenset[Axiom]: ...

    def is_consistent(self) -> bool: ...

    def is_satisfiable(self, ce: ClassExpression) -> bool: ...

    def unsatisfiable_classes(self) -> frozenset[Class]: ...

    def super_classes(self, ce: ClassExpression, direct: bool = False) -> frozenset[Class]: ...

    def sub_classes(self, ce: ClassExpression, direct: bool = False) -> frozenset[Class]: ...

    def equivalent_classes(self, ce: ClassExpression) -> frozenset[Class]: ...

    def is_entailed(self, axioms: Axiom | Iterable[Axiom]) -> bool: ...

    def is_entailment_checking_supported(self, axiom_type: type) -> bool: ...

    def precompute_inferences(self) -> None: ...

    def is_precomputed(self) -> bool: ...

    def interrupt(self) -> None: ...

    def dispose(self) -> None: ...


class ClassifierFactory(Protocol):
    """Creates one classifier over an ontology."""

    def __call__(
        self,
        ontology: Ontology,
        *,
        buffering_mode: BufferingMode,
        configuration: ReasonerConfiguration | None,
    ) -> Classifier: ...
