"""Reference EL classifier for pyEMR.

A structural classifier for the EL fragment: ``owl:Thing``, ``owl:Nothing``,
conjunction (``and``), existential restriction (``some``), disjointness,
property domains, property hierarchies and transitive properties. Like the
fast EL engines this package is meant to wrap, it does *not* support range
axioms; they are ignored with a warning.

Axioms are first rewritten into normal forms, introducing internal names for
complex subexpressions:

    NF1  A1 and ... and An SubClassOf B
    NF2  A SubClassOf r some B
    NF3  r some A SubClassOf B

and then saturated with the completion rules, where S(X) is the set of atoms
subsuming X and R(r) the set of r-edges between atoms:

    [CR1]  A1..An in S(X), A1 and .. and An SubClassOf B    =>  B in S(X)
    [CR2]  A in S(X), A SubClassOf r some B                 =>  (X, B) in R(r)
    [CR3]  (X, Y) in R(r), A in S(Y), r some A SubClassOf B =>  B in S(X)
    [CR4]  (X, Y) in R(r), Nothing in S(Y)                  =>  Nothing in S(X)
    [CR5]  (X, Y) in R(r), r SubPropertyOf* s               =>  (X, Y) in R(s)
    [CR6]  (X, Y), (Y, Z) in R(r), r transitive             =>  (X, Z) in R(r)

Anonymous query expressions are classified by adding a fresh internal query
class declared equivalent to the expression and saturating again.
"""

from __future__ import annotations

import logging
import time
from collections import defaultdict, deque
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from itertools import count

from pyemr.classifier import (
    BufferingMode,
    FreshEntityError,
    FreshEntityPolicy,
    InconsistentOntologyError,
    ProfileViolationError,
    ReasonerConfiguration,
    ReasonerError,
    ReasonerInterruptedError,
    ReasonerTimeoutError,
    UnsupportedEntailmentTypeError,
)
from pyemr.ontology import Ontology
from pyemr.syntax import (
    AXIOM_TYPES,
    NOTHING,
    THING,
    AnnotationAssertion,
    Axiom,
    Class,
    ClassExpression,
    Declaration,
    DisjointClasses,
    EquivalentClasses,
    ObjectIntersectionOf,
    ObjectProperty,
    ObjectPropertyDomain,
    ObjectPropertyRange,
    ObjectSomeValuesFrom,
    SubClassOf,
    SubObjectPropertyOf,
    TransitiveObjectProperty,
    entities_in,
)

logger = logging.getLogger(__name__)

# Rule applications between timeout/interrupt checks
_CHECK_INTERVAL = 1024

_ENTAILMENT_TYPES: tuple[type, ...] = (
    SubClassOf,
    EquivalentClasses,
    DisjointClasses,
    ObjectPropertyDomain,
    Declaration,
)


@dataclass(frozen=True, slots=True)
class _AuxClass(Class):
    """Internal name introduced by normalization or queries; never reported."""


def _profile_violation(ce: ClassExpression) -> ClassExpression | None:
    """Return the first sub-expression outside EL, or None."""
    if isinstance(ce, Class):
        return None
    if isinstance(ce, ObjectSomeValuesFrom):
        return _profile_violation(ce.filler)
    if isinstance(ce, ObjectIntersectionOf):
        for operand in ce.operands:
            found = _profile_violation(operand)
            if found is not None:
                return found
        return None
    return ce


def _class_expressions(axiom: Axiom) -> list[ClassExpression]:
    """Class expressions the classifier has to interpret in *axiom*."""
    if isinstance(axiom, SubClassOf):
        return [axiom.sub, axiom.sup]
    if isinstance(axiom, (EquivalentClasses, DisjointClasses)):
        return list(axiom.operands)
    if isinstance(axiom, ObjectPropertyDomain):
        return [axiom.domain]
    return []


# -------------------------------------------------------------------
# Normalization
# -------------------------------------------------------------------


class _Normalizer:
    """Rewrites EL axioms into the three normal forms, indexed for saturation."""

    def __init__(self) -> None:
        self.conj: dict[Class, list[tuple[frozenset[Class], Class]]] = defaultdict(list)
        self.exists_rhs: dict[Class, list[tuple[ObjectProperty, Class]]] = defaultdict(list)
        self.exists_lhs: dict[tuple[ObjectProperty, Class], list[Class]] = defaultdict(list)
        self.role_edges: dict[ObjectProperty, set[ObjectProperty]] = defaultdict(set)
        self.transitive: set[ObjectProperty] = set()
        self.atoms: set[Class] = {THING, NOTHING}
        self._next_id = 0
        self._super_roles: dict[ObjectProperty, frozenset[ObjectProperty]] = {}

    def copy(self) -> _Normalizer:
        other = _Normalizer()
        other.conj = defaultdict(list, {k: list(v) for k, v in self.conj.items()})
        other.exists_rhs = defaultdict(list, {k: list(v) for k, v in self.exists_rhs.items()})
        other.exists_lhs = defaultdict(list, {k: list(v) for k, v in self.exists_lhs.items()})
        other.role_edges = defaultdict(set, {k: set(v) for k, v in self.role_edges.items()})
        other.transitive = set(self.transitive)
        other.atoms = set(self.atoms)
        other._next_id = self._next_id
        return other

    def fresh(self) -> Class:
        name = _AuxClass(f"_:aux{self._next_id}")
        self._next_id += 1
        self.atoms.add(name)
        return name

    def super_roles(self, role: ObjectProperty) -> frozenset[ObjectProperty]:
        """Reflexive-transitive closure of the property hierarchy above *role*."""
        if role not in self._super_roles:
            closure = {role}
            stack = [role]
            while stack:
                for sup in self.role_edges.get(stack.pop(), ()):
                    if sup not in closure:
                        closure.add(sup)
                        stack.append(sup)
            self._super_roles[role] = frozenset(closure)
        return self._super_roles[role]

    def add_axiom(self, axiom: Axiom) -> None:
        if isinstance(axiom, SubClassOf):
            self.subsume(axiom.sub, axiom.sup)
        elif isinstance(axiom, EquivalentClasses):
            first, *others = sorted(axiom.operands, key=str)
            for other in others:
                self.subsume(first, other)
                self.subsume(other, first)
        elif isinstance(axiom, DisjointClasses):
            operands = sorted(axiom.operands, key=str)
            for i, a in enumerate(operands):
                for b in operands[i + 1 :]:
                    self.subsume(ObjectIntersectionOf(frozenset({a, b})), NOTHING)
        elif isinstance(axiom, ObjectPropertyDomain):
            self.subsume(ObjectSomeValuesFrom(axiom.property, THING), axiom.domain)
        elif isinstance(axiom, SubObjectPropertyOf):
            self.role_edges[axiom.sub].add(axiom.sup)
            self._super_roles.clear()
        elif isinstance(axiom, TransitiveObjectProperty):
            self.transitive.add(axiom.property)
        elif isinstance(axiom, Declaration) and isinstance(axiom.entity, Class):
            self.atoms.add(axiom.entity)

    def subsume(self, c: ClassExpression, d: ClassExpression) -> None:
        if isinstance(d, ObjectIntersectionOf):
            for operand in d.operands:
                self.subsume(c, operand)
            return
        if c == NOTHING or d == THING:
            return
        if isinstance(c, ObjectSomeValuesFrom):
            filler = self.name_lhs(c.filler)
            self.exists_lhs[(c.property, filler)].append(self.name_rhs(d))
            return

        operands = c.operands if isinstance(c, ObjectIntersectionOf) else (c,)
        conjuncts = frozenset(self.name_lhs(op) for op in operands)
        if isinstance(d, ObjectSomeValuesFrom):
            x = self._single(conjuncts)
            self.exists_rhs[x].append((d.property, self.name_rhs(d.filler)))
            return
        self._add_conj(conjuncts, self.name_rhs(d))

    def name_lhs(self, c: ClassExpression) -> Class:
        if isinstance(c, Class):
            self.atoms.add(c)
            return c
        name = self.fresh()
        self.subsume(c, name)
        return name

    def name_rhs(self, d: ClassExpression) -> Class:
        if isinstance(d, Class):
            self.atoms.add(d)
            return d
        name = self.fresh()
        self.subsume(name, d)
        return name

    def _single(self, conjuncts: frozenset[Class]) -> Class:
        if len(conjuncts) == 1:
            return next(iter(conjuncts))
        name = self.fresh()
        self._add_conj(conjuncts, name)
        return name

    def _add_conj(self, conjuncts: frozenset[Class], rhs: Class) -> None:
        if rhs in conjuncts:
            return
        entry = (conjuncts, rhs)
        for atom in conjuncts:
            self.conj[atom].append(entry)


# -------------------------------------------------------------------
# Saturation
# -------------------------------------------------------------------


class _Saturation:
    """Completion-rule closure over a normalized TBox."""

    def __init__(self, tbox: _Normalizer, check: Callable[[], None]) -> None:
        self.tbox = tbox
        self.subsumers: dict[Class, set[Class]] = {}
        self.succ: dict[Class, set[tuple[ObjectProperty, Class]]] = defaultdict(set)
        self.pred: dict[Class, set[tuple[ObjectProperty, Class]]] = defaultdict(set)
        self._queue: deque[tuple] = deque()
        self._check = check
        self.steps = 0

    def run(self) -> _Saturation:
        self._check()
        for atom in sorted(self.tbox.atoms, key=str):  # sorted for determinism
            self._init(atom)
        while self._queue:
            self.steps += 1
            if self.steps % _CHECK_INTERVAL == 0:
                self._check()
            task = self._queue.popleft()
            if len(task) == 2:
                self._process_subsumer(*task)
            else:
                self._process_edge(*task)
        return self

    def _init(self, atom: Class) -> None:
        if atom in self.subsumers:
            return
        self.subsumers[atom] = set()
        self._add(atom, atom)
        self._add(atom, THING)

    def _add(self, x: Class, a: Class) -> None:
        subsumers = self.subsumers[x]
        if a not in subsumers:
            subsumers.add(a)
            self._queue.append((x, a))

    def _add_edge(self, role: ObjectProperty, x: Class, y: Class) -> None:
        self._init(y)
        for s in self.tbox.super_roles(role):
            if (s, y) not in self.succ[x]:
                self.succ[x].add((s, y))
                self.pred[y].add((s, x))
                self._queue.append((s, x, y))

    def _process_subsumer(self, x: Class, a: Class) -> None:
        subsumers = self.subsumers[x]
        # [CR1]
        for conjuncts, b in self.tbox.conj.get(a, ()):
            if b not in subsumers and conjuncts <= subsumers:
                self._add(x, b)
        # [CR2]
        for role, b in self.tbox.exists_rhs.get(a, ()):
            self._add_edge(role, x, b)
        # [CR3] and [CR4] for edges already pointing at x
        for role, z in list(self.pred[x]):
            for b in self.tbox.exists_lhs.get((role, a), ()):
                self._add(z, b)
            if a == NOTHING:
                self._add(z, NOTHING)

    def _process_edge(self, role: ObjectProperty, x: Class, y: Class) -> None:
        # [CR3]
        for a in list(self.subsumers[y]):
            for b in self.tbox.exists_lhs.get((role, a), ()):
                self._add(x, b)
        # [CR4]
        if NOTHING in self.subsumers[y]:
            self._add(x, NOTHING)
        # [CR6]
        if role in self.tbox.transitive:
            for s, w in list(self.succ[y]):
                if s == role:
                    self._add_edge(role, x, w)
            for s, v in list(self.pred[x]):
                if s == role:
                    self._add_edge(role, v, y)

    # --- Read access ---

    def subsumes(self, sub: Class, sup: Class) -> bool:
        """True if *sup* subsumes *sub* (every unsatisfiable atom is subsumed)."""
        subsumers = self.subsumers.get(sub)
        if subsumers is None:
            return sup == THING
        return sup in subsumers or NOTHING in subsumers

    def named_classes(self) -> frozenset[Class]:
        return frozenset(a for a in self.subsumers if not isinstance(a, _AuxClass))


# -------------------------------------------------------------------
# Classifier
# -------------------------------------------------------------------


class ELClassifier:
    """Classifier for the EL fragment implementing the ``Classifier`` protocol.

    Parameters:
        ontology: The ontology to classify, imports included.
        buffering_mode: Whether changes wait for ``flush()``.
        configuration: Timeout and fresh-entity policy.
    """

    name = "EL Reference Classifier"
    supports_range_axioms = False

    def __init__(
        self,
        ontology: Ontology,
        *,
        buffering_mode: BufferingMode = BufferingMode.BUFFERING,
        configuration: ReasonerConfiguration | None = None,
    ) -> None:
        self._ontology = ontology
        self._buffering_mode = buffering_mode
        self._configuration = configuration or ReasonerConfiguration()
        self._interrupted = False
        self._disposed = False
        self._range_warning_issued = False
        self._query_ids = count()
        self._load()
        logger.debug(
            "ELClassifier created: %s, %s, %d axioms",
            ontology.iri, buffering_mode.value, len(self._snapshot),
        )

    # --- Synchronization ---

    def _load(self) -> None:
        """Take a fresh snapshot of the ontology and drop derived state."""
        self._snapshot: frozenset[Axiom] = self._ontology.axioms(include_imports=True)
        self._synced_changes = self._ontology.change_count
        self._signature: frozenset[Class | ObjectProperty] = frozenset(
            e for axiom in self._snapshot for e in entities_in(axiom)
        )
        self._base_tbox: _Normalizer | None = None
        self._saturation: _Saturation | None = None
        self._query_cache: dict[ClassExpression, tuple[_Saturation, Class]] = {}

    def _is_stale(self) -> bool:
        return self._ontology.change_count != self._synced_changes

    def _sync(self) -> None:
        if self._disposed:
            raise ReasonerError("Classifier has been disposed")
        if self._buffering_mode is BufferingMode.NON_BUFFERING and self._is_stale():
            logger.debug("Non-buffering sync of %s", self._ontology.iri)
            self._load()

    @property
    def buffering_mode(self) -> BufferingMode:
        return self._buffering_mode

    @property
    def root_ontology(self) -> Ontology:
        return self._ontology

    @property
    def configuration(self) -> ReasonerConfiguration:
        return self._configuration

    def flush(self) -> None:
        """Make pending ontology changes visible to subsequent queries."""
        if self._is_stale():
            self._load()
            logger.debug("Flushed %s: %d axioms", self._ontology.iri, len(self._snapshot))

    def pending_axiom_additions(self) -> frozenset[Axiom]:
        if self._buffering_mode is BufferingMode.NON_BUFFERING:
            return frozenset()
        return self._ontology.axioms(include_imports=True) - self._snapshot

    def pending_axiom_removals(self) -> frozenset[Axiom]:
        if self._buffering_mode is BufferingMode.NON_BUFFERING:
            return frozenset()
        return self._snapshot - self._ontology.axioms(include_imports=True)

    # --- Saturation ---

    def _check_progress(self, deadline: float | None) -> None:
        if self._interrupted:
            self._interrupted = False
            raise ReasonerInterruptedError("Classification interrupted")
        if deadline is not None and time.monotonic() >= deadline:
            raise ReasonerTimeoutError(
                f"Classification exceeded {self._configuration.timeout}s"
            )

    def _normalized_base(self) -> _Normalizer:
        if self._base_tbox is None:
            tbox = _Normalizer()
            ignored: list[Axiom] = []
            ranges = 0
            for axiom in sorted(self._snapshot, key=str):  # sorted for determinism
                if isinstance(axiom, ObjectPropertyRange):
                    ranges += 1
                    continue
                if any(_profile_violation(ce) is not None for ce in _class_expressions(axiom)):
                    ignored.append(axiom)
                    continue
                tbox.add_axiom(axiom)
            for entity in self._signature:
                if isinstance(entity, Class):
                    tbox.atoms.add(entity)
            if ranges and not self._range_warning_issued:
                logger.warning(
                    "%s does not support range axioms; ignoring %d of them",
                    self.name, ranges,
                )
                self._range_warning_issued = True
            for axiom in ignored:
                logger.warning("Ignoring axiom outside EL: %s", axiom)
            self._base_tbox = tbox
        return self._base_tbox

    def _saturate(self, extra: Iterable[Axiom] = ()) -> _Saturation:
        tbox = self._normalized_base()
        if extra:
            tbox = tbox.copy()
            for axiom in extra:
                tbox.add_axiom(axiom)
        timeout = self._configuration.timeout
        deadline = time.monotonic() + timeout if timeout is not None else None
        start = time.perf_counter()
        saturation = _Saturation(tbox, lambda: self._check_progress(deadline)).run()
        logger.debug(
            "Saturated %d atoms in %d steps (%.3fs)",
            len(saturation.subsumers), saturation.steps, time.perf_counter() - start,
        )
        return saturation

    def _classified(self) -> _Saturation:
        if self._saturation is None:
            self._saturation = self._saturate()
            logger.info(
                "Classified %s: %d classes",
                self._ontology.iri, len(self._saturation.named_classes()),
            )
        return self._saturation

    def _check_query(self, ce: ClassExpression) -> None:
        violation = _profile_violation(ce)
        if violation is not None:
            raise ProfileViolationError(f"Class expression not in EL: {violation}")
        if self._configuration.fresh_entity_policy is FreshEntityPolicy.DISALLOW:
            fresh = {
                e for e in entities_in(ce)
                if e not in self._signature and not (isinstance(e, Class) and e.is_builtin)
            }
            if fresh:
                raise FreshEntityError(fresh)

    def _require_consistent(self, saturation: _Saturation) -> None:
        if NOTHING in saturation.subsumers[THING]:
            raise InconsistentOntologyError(f"Ontology {self._ontology.iri} is inconsistent")

    def _query(self, ce: ClassExpression) -> tuple[_Saturation, Class]:
        """Return a saturation and the atom standing for *ce* in it."""
        self._sync()
        self._check_query(ce)
        saturation = self._classified()
        self._require_consistent(saturation)
        if isinstance(ce, Class) and ce in saturation.subsumers:
            return saturation, ce
        if ce not in self._query_cache:
            query = _AuxClass(f"_:query{next(self._query_ids)}")
            self._query_cache[ce] = (
                self._saturate(extra=[EquivalentClasses(frozenset({query, ce}))]),
                query,
            )
        return self._query_cache[ce]

    # --- Queries ---

    def is_consistent(self) -> bool:
        self._sync()
        return NOTHING not in self._classified().subsumers[THING]

    def is_satisfiable(self, ce: ClassExpression) -> bool:
        saturation, q = self._query(ce)
        return NOTHING not in saturation.subsumers[q]

    def unsatisfiable_classes(self) -> frozenset[Class]:
        return self.equivalent_classes(NOTHING)

    def super_classes(self, ce: ClassExpression, direct: bool = False) -> frozenset[Class]:
        saturation, q = self._query(ce)
        supers = {
            b for b in saturation.named_classes()
            if saturation.subsumes(q, b) and not saturation.subsumes(b, q)
        }
        if direct:
            supers = {
                b for b in supers
                if not any(
                    c != b and saturation.subsumes(c, b) and not saturation.subsumes(b, c)
                    for c in supers
                )
            }
        return frozenset(supers)

    def sub_classes(self, ce: ClassExpression, direct: bool = False) -> frozenset[Class]:
        saturation, q = self._query(ce)
        subs = {
            x for x in saturation.named_classes()
            if saturation.subsumes(x, q) and not saturation.subsumes(q, x)
        }
        if direct:
            subs = {
                x for x in subs
                if not any(
                    c != x and saturation.subsumes(x, c) and not saturation.subsumes(c, x)
                    for c in subs
                )
            }
        return frozenset(subs)

    def equivalent_classes(self, ce: ClassExpression) -> frozenset[Class]:
        saturation, q = self._query(ce)
        return frozenset(
            x for x in saturation.named_classes()
            if saturation.subsumes(x, q) and saturation.subsumes(q, x)
        )

    def _is_subsumed(self, sub: ClassExpression, sup: ClassExpression) -> bool:
        saturation, q = self._query(sub)
        if isinstance(sup, Class) and sup in saturation.subsumers:
            return saturation.subsumes(q, sup)
        self._check_query(sup)
        upper = _AuxClass(f"_:query{next(self._query_ids)}")
        lower = _AuxClass(f"_:query{next(self._query_ids)}")
        pair = self._saturate(extra=[
            EquivalentClasses(frozenset({lower, sub})),
            EquivalentClasses(frozenset({upper, sup})),
        ])
        return pair.subsumes(lower, upper)

    def is_entailed(self, axioms: Axiom | Iterable[Axiom]) -> bool:
        """Check whether every given axiom follows from the ontology."""
        if isinstance(axioms, AXIOM_TYPES):
            axioms = [axioms]
        for axiom in axioms:
            if not self._entails(axiom):
                return False
        return True

    def _entails(self, axiom: Axiom) -> bool:
        if isinstance(axiom, SubClassOf):
            return self._is_subsumed(axiom.sub, axiom.sup)
        if isinstance(axiom, EquivalentClasses):
            first, *others = sorted(axiom.operands, key=str)
            return all(
                self._is_subsumed(first, o) and self._is_subsumed(o, first) for o in others
            )
        if isinstance(axiom, DisjointClasses):
            operands = sorted(axiom.operands, key=str)
            return all(
                not self.is_satisfiable(ObjectIntersectionOf(frozenset({a, b})))
                for i, a in enumerate(operands)
                for b in operands[i + 1 :]
            )
        if isinstance(axiom, ObjectPropertyDomain):
            return self._is_subsumed(ObjectSomeValuesFrom(axiom.property, THING), axiom.domain)
        if isinstance(axiom, Declaration):
            self._sync()
            return axiom.entity in self._signature
        if isinstance(axiom, AnnotationAssertion):
            raise UnsupportedEntailmentTypeError("Annotations carry no logical content")
        raise UnsupportedEntailmentTypeError(
            f"Entailment of {type(axiom).__name__} is not supported"
        )

    def is_entailment_checking_supported(self, axiom_type: type) -> bool:
        return axiom_type in _ENTAILMENT_TYPES

    # --- Lifecycle ---

    def precompute_inferences(self) -> None:
        self._sync()
        self._classified()

    def is_precomputed(self) -> bool:
        if self._saturation is None:
            return False
        return self._buffering_mode is BufferingMode.BUFFERING or not self._is_stale()

    def interrupt(self) -> None:
        """Stop the running (or next) computation with ReasonerInterruptedError."""
        self._interrupted = True

    def dispose(self) -> None:
        self._disposed = True
        self._base_tbox = None
        self._saturation = None
        self._query_cache = {}
        logger.debug("ELClassifier disposed: %s", self._ontology.iri)
