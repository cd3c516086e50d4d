"""pyEMR — Expression Materializing Reasoner.

Materializes existential expressions ``R some C`` as named classes so that a
classifier which only handles named classes well can answer expression-level
queries, and rewrites range axioms for classifiers that ignore them.

Public API::

    from pyemr import ExpressionMaterializingReasoner, ELClassifier, Ontology
    from pyemr import Class, ObjectProperty, parse_axiom, parse_class_expression
"""

from pyemr._version import __version__
from pyemr.classifier import (
    BufferingMode,
    Classifier,
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
from pyemr.el import ELClassifier
from pyemr.ontology import Ontology
from pyemr.reasoner import ExpressionMaterializingReasoner
from pyemr.registry import ExpressionRegistry
from pyemr.syntax import (
    NOTHING,
    THING,
    Class,
    ObjectProperty,
    ObjectSomeValuesFrom,
    SyntheticClass,
    parse_axiom,
    parse_class_expression,
    some,
)

__all__ = [
    "__version__",
    "ExpressionMaterializingReasoner",
    "ExpressionRegistry",
    "ELClassifier",
    "Classifier",
    "BufferingMode",
    "ReasonerConfiguration",
    "FreshEntityPolicy",
    "ReasonerError",
    "InconsistentOntologyError",
    "ProfileViolationError",
    "FreshEntityError",
    "ReasonerTimeoutError",
    "ReasonerInterruptedError",
    "UnsupportedEntailmentTypeError",
    "Ontology",
    "Class",
    "ObjectProperty",
    "ObjectSomeValuesFrom",
    "SyntheticClass",
    "THING",
    "NOTHING",
    "some",
    "parse_axiom",
    "parse_class_expression",
]
