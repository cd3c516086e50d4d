"""In-memory ontology for pyEMR.

An ``Ontology`` is an insertion-ordered set of axioms plus a list of imported
ontologies held by reference. Signature queries (classes, object properties)
and axiom queries can be scoped to the ontology alone or to its whole imports
closure. Every change bumps a counter, which classifiers use to detect that
their view of the ontology has gone stale.

Ontologies are saved and loaded as OWL documents through rdflib (see
``pyemr.rdf`` for the mapping)::

    ont = Ontology.from_file("tree.ttl")
    ont.to_file("tree.owl")          # RDF/XML, guessed from the extension

``owl:imports`` written by ``to_file`` reference the imported file relative
to the importing one.
"""

from __future__ import annotations

import logging
import os
import uuid
from collections.abc import Callable, Iterable, Iterator, Mapping
from pathlib import Path
from urllib.parse import quote, urlparse
from urllib.request import url2pathname
from xml.sax import SAXParseException

from rdflib import Graph
from rdflib.exceptions import ParserError
from rdflib.plugin import PluginException
from rdflib.util import guess_format

from pyemr.rdf import read_graph, to_node, write_graph
from pyemr.syntax import (
    AXIOM_TYPES,
    Axiom,
    Class,
    ObjectProperty,
    entities_in,
)

logger = logging.getLogger(__name__)


def generate_iri() -> str:
    """Mint a fresh, globally unique ontology IRI."""
    return f"urn:uuid:{uuid.uuid4()}"


def _validate_axiom(axiom: object) -> None:
    """Raise TypeError if *axiom* is not one of the supported axiom types."""
    if not isinstance(axiom, AXIOM_TYPES):
        raise TypeError(f"Not an axiom: {axiom!r}")


def _guess_format(path: Path) -> str:
    return guess_format(str(path)) or "turtle"


def _resolve_import(ref: str, catalog: Mapping[str, str | Path] | None) -> Path:
    """The file behind an ``owl:imports`` reference."""
    if catalog is not None and ref in catalog:
        return Path(catalog[ref])
    parsed = urlparse(ref)
    if parsed.scheme == "file":
        return Path(url2pathname(parsed.path))
    raise ValueError(f"Cannot resolve import {ref}: not a local file and not in the catalog")


class Ontology:
    """A set of axioms with imports.

    Parameters:
        iri: Ontology IRI, or None for an anonymous ontology.
        axioms: Initial axioms.
        imports: Ontologies imported by reference.
    """

    def __init__(
        self,
        iri: str | None = None,
        axioms: Iterable[Axiom] | None = None,
        imports: Iterable[Ontology] | None = None,
    ) -> None:
        self._iri = iri
        # dict keys as an insertion-ordered set
        self._axioms: dict[Axiom, None] = {}
        self._imports: list[Ontology] = []
        self._changes = 0
        self.location: Path | None = None

        for axiom in axioms or ():
            _validate_axiom(axiom)
            self._axioms[axiom] = None
        for ontology in imports or ():
            self.add_import(ontology)

        logger.debug(
            "Ontology created: %s (%d axioms, %d imports)",
            self._iri, len(self._axioms), len(self._imports),
        )

    def __repr__(self) -> str:
        return f"Ontology(iri={self._iri!r}, axioms={len(self._axioms)})"

    def __len__(self) -> int:
        return len(self._axioms)

    def __iter__(self) -> Iterator[Axiom]:
        return iter(list(self._axioms))

    def __contains__(self, axiom: object) -> bool:
        return axiom in self._axioms

    # --- Identity ---

    @property
    def iri(self) -> str | None:
        return self._iri

    @iri.setter
    def iri(self, value: str | None) -> None:
        logger.debug("Ontology IRI set: %s -> %s", self._iri, value)
        self._iri = value
        self._changes += 1

    # --- Imports ---

    @property
    def imports(self) -> tuple[Ontology, ...]:
        """Directly imported ontologies (read-only view)."""
        return tuple(self._imports)

    def add_import(self, ontology: Ontology) -> bool:
        """Import *ontology* by reference. Returns False if already imported."""
        if ontology is self or any(o is ontology for o in self._imports):
            return False
        self._imports.append(ontology)
        self._changes += 1
        logger.debug("Added import: %s imports %s", self._iri, ontology.iri)
        return True

    def imports_closure(self) -> list[Ontology]:
        """This ontology followed by every ontology reachable through imports."""
        seen: set[int] = set()
        closure: list[Ontology] = []
        stack: list[Ontology] = [self]
        while stack:
            ontology = stack.pop()
            if id(ontology) in seen:
                continue
            seen.add(id(ontology))
            closure.append(ontology)
            stack.extend(reversed(ontology._imports))
        return closure

    @property
    def change_count(self) -> int:
        """Number of changes made to this ontology and its imports closure."""
        return sum(o._changes for o in self.imports_closure())

    # --- Mutation ---

    def add_axiom(self, axiom: Axiom) -> bool:
        """Add *axiom*. Returns False if it was already present."""
        _validate_axiom(axiom)
        if axiom in self._axioms:
            return False
        self._axioms[axiom] = None
        self._changes += 1
        logger.debug("Added axiom: %s", axiom)
        return True

    def add_axioms(self, axioms: Iterable[Axiom]) -> int:
        """Add several axioms. Returns how many were new."""
        return sum(1 for axiom in axioms if self.add_axiom(axiom))

    def remove_axiom(self, axiom: Axiom) -> bool:
        """Remove *axiom*. Returns False if it was not present."""
        if axiom not in self._axioms:
            return False
        del self._axioms[axiom]
        self._changes += 1
        logger.debug("Removed axiom: %s", axiom)
        return True

    # --- Queries ---

    def _scope(self, include_imports: bool) -> list[Ontology]:
        return self.imports_closure() if include_imports else [self]

    def axioms(self, include_imports: bool = False) -> frozenset[Axiom]:
        """All axioms, optionally including the imports closure."""
        result: set[Axiom] = set()
        for ontology in self._scope(include_imports):
            result.update(ontology._axioms)
        return frozenset(result)

    def axioms_of_type(self, *types: type, include_imports: bool = False) -> list[Axiom]:
        """Axioms that are instances of *types*, in insertion order."""
        return [
            axiom
            for ontology in self._scope(include_imports)
            for axiom in ontology._axioms
            if isinstance(axiom, types)
        ]

    def contains_axiom(self, axiom: Axiom, include_imports: bool = False) -> bool:
        return any(axiom in o._axioms for o in self._scope(include_imports))

    def classes_in_signature(self, include_imports: bool = False) -> frozenset[Class]:
        """Named classes mentioned by any axiom, excluding Thing and Nothing."""
        return frozenset(
            entity
            for ontology in self._scope(include_imports)
            for axiom in ontology._axioms
            for entity in entities_in(axiom)
            if isinstance(entity, Class) and not entity.is_builtin
        )

    def object_properties_in_signature(
        self, include_imports: bool = False
    ) -> frozenset[ObjectProperty]:
        """Object properties mentioned by any axiom."""
        return frozenset(
            entity
            for ontology in self._scope(include_imports)
            for axiom in ontology._axioms
            for entity in entities_in(axiom)
            if isinstance(entity, ObjectProperty)
        )

    # --- Serialization ---

    def _import_refs(self, relative_to: Path | None) -> list[str]:
        refs = []
        for ontology in self._imports:
            if ontology.location is not None:
                if relative_to is not None:
                    rel = Path(os.path.relpath(ontology.location, relative_to))
                    refs.append(quote(rel.as_posix()))
                else:
                    refs.append(ontology.location.as_uri())
            elif ontology.iri is not None:
                refs.append(str(to_node(ontology.iri)))
            else:
                raise ValueError("Cannot reference an anonymous import with no file location")
        return refs

    def to_graph(self, relative_to: Path | None = None) -> Graph:
        """Map the ontology to an rdflib ``Graph``.

        Imports with a file location are written as references to that file
        (relative to *relative_to* when given), other imports as their IRI.
        """
        return write_graph(self._iri, self._axioms, self._import_refs(relative_to))

    @classmethod
    def from_graph(
        cls,
        graph: Graph,
        resolver: Callable[[str], Ontology] | None = None,
    ) -> Ontology:
        """Build an ontology from an rdflib ``Graph``.

        *resolver* maps each ``owl:imports`` reference to an ontology; it is
        required when the graph has imports.
        """
        iri, refs, axioms = read_graph(graph)
        ontology = cls(iri=iri, axioms=axioms)
        if refs and resolver is None:
            raise ValueError("Ontology has imports but no resolver was given")
        for ref in refs:
            ontology.add_import(resolver(ref))  # type: ignore[misc]
        return ontology

    def to_file(self, path: str | Path, format: str | None = None) -> None:
        """Write the ontology as an OWL document.

        The format defaults to the one rdflib guesses from the file extension
        (``.ttl``, ``.owl``, ``.rdf``, ``.nt``, ``.jsonld``), else Turtle.
        Imports are written as references to their files, so every import
        must itself have been loaded from or saved to a file.

        Raises:
            ValueError: If an import has no file location.
        """
        path = Path(path)
        for ontology in self._imports:
            if ontology.location is None:
                raise ValueError(
                    f"Import {ontology.iri} has no file location; save it with to_file first"
                )
        graph = self.to_graph(relative_to=path.resolve().parent)
        graph.serialize(destination=str(path), format=format or _guess_format(path))
        self.location = path.resolve()
        logger.debug("Saved ontology to %s", path)

    @classmethod
    def from_file(
        cls,
        path: str | Path,
        *,
        format: str | None = None,
        catalog: Mapping[str, str | Path] | None = None,
        _cache: dict[Path, Ontology] | None = None,
    ) -> Ontology:
        """Load an OWL document and, recursively, its imports.

        Imports that reference files (as written by ``to_file``) are followed
        directly; other import IRIs are looked up in *catalog*, a mapping
        from ontology IRI to file path. An ontology reachable along several
        import paths is loaded once.

        Raises:
            FileNotFoundError: If a file does not exist.
            ValueError: If a file cannot be parsed or an import cannot be
                resolved.
        """
        path = Path(path).resolve()
        cache: dict[Path, Ontology] = {} if _cache is None else _cache
        if path in cache:
            return cache[path]
        if not path.is_file():
            raise FileNotFoundError(f"Ontology file {path} does not exist.")

        graph = Graph()
        try:
            graph.parse(str(path), format=format or _guess_format(path))
        except (SyntaxError, SAXParseException, ParserError, PluginException) as e:
            raise ValueError(f"Cannot parse {path}: {e}") from e

        iri, refs, axioms = read_graph(graph)
        ontology = cls(iri=iri, axioms=axioms)
        ontology.location = path
        cache[path] = ontology
        for ref in refs:
            ontology.add_import(
                cls.from_file(_resolve_import(ref, catalog), catalog=catalog, _cache=cache)
            )

        logger.debug("Loaded ontology from %s", path)
        return ontology
