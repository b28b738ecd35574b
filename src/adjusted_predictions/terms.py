"""Parsing of focal-term specifications.

A focal term names a predictor and, optionally, the values to
evaluate it at.  Three spellings are accepted and may be mixed within
a list:

* ``"x"`` — representative values are chosen automatically.
* ``"x [1, 2.5, 4]"`` / ``"group [a, b]"`` — explicit literal values.
* ``"x [meansd]"`` — a named shortcut (see :data:`SHORTCUTS`),
  ``"x [n=7]"`` for a denser or coarser range, ``"x [0:10]"`` or
  ``"x [0:10 by=2.5]"`` for an arithmetic sequence.

A mapping ``{"x": [1, 2], "g": None, "z": "minmax"}`` is equivalent to
the corresponding list of strings.

Shortcuts resolve against the observed data of the predictor:

============  =========================================================
``meansd``    mean − SD, mean, mean + SD
``minmax``    minimum and maximum
``quart``     minimum, lower quartile, median, upper quartile, maximum
``quart2``    lower quartile, median, upper quartile
``zeromax``   evenly spaced values from 0 to the maximum
``all``       every distinct observed value
============  =========================================================
"""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

import numpy as np

from ._typing import TermsLike
from .exceptions import InvalidTermsError

MAX_TERMS = 4
"""Maximum number of focal terms (x, group, facet, panel)."""

ROLES = ("x", "group", "facet", "panel")
"""Positional role of each focal term in the result table."""

SHORTCUTS = frozenset({"meansd", "minmax", "quart", "quart2", "zeromax", "all"})

_TERM = re.compile(r"^\s*(?P<name>[^\[\]]+?)\s*(?:\[(?P<spec>[^\[\]]*)\])?\s*$")
_N_VALUES = re.compile(r"^n\s*=\s*(?P<n>\d+)$")
_RANGE = re.compile(
    r"^(?P<start>-?[\d.eE+-]+)\s*:\s*(?P<stop>-?[\d.eE+-]+)"
    r"(?:\s+by\s*=\s*(?P<by>[\d.eE+-]+))?$"
)


@dataclass(frozen=True)
class TermSpec:
    """One parsed focal term.

    Exactly one of *values*, *shortcut*, *n_values* and *sequence* is
    set, or none of them when representative values are automatic.

    Attributes:
        name: Predictor name.
        values: Explicit literal values, in the order given.
        shortcut: One of :data:`SHORTCUTS`.
        n_values: Number of evenly spaced values (``[n=K]``).
        sequence: ``(start, stop, step)`` of an arithmetic sequence.
    """

    name: str
    values: tuple[Any, ...] | None = None
    shortcut: str | None = None
    n_values: int | None = None
    sequence: tuple[float, float, float] | None = None

    @property
    def is_automatic(self) -> bool:
        return (
            self.values is None
            and self.shortcut is None
            and self.n_values is None
            and self.sequence is None
        )


def _literal(token: str) -> Any:
    """Convert a bracket token to a float when possible, else a string."""
    token = token.strip().strip("'\"")
    try:
        return float(token)
    except ValueError:
        return token


def _parse_bracket(name: str, spec: str) -> TermSpec:
    spec = spec.strip()
    if not spec:
        msg = f"Empty value specification for term {name!r}."
        raise InvalidTermsError(msg)

    lowered = spec.lower()
    if lowered in SHORTCUTS:
        return TermSpec(name=name, shortcut=lowered)

    match = _N_VALUES.match(lowered)
    if match:
        n = int(match.group("n"))
        if n < 2:
            msg = f"Term {name!r}: [n=...] needs at least 2 values, got {n}."
            raise InvalidTermsError(msg)
        return TermSpec(name=name, n_values=n)

    match = _RANGE.match(lowered)
    if match:
        try:
            start = float(match.group("start"))
            stop = float(match.group("stop"))
            step = float(match.group("by")) if match.group("by") else 1.0
        except ValueError:
            msg = f"Term {name!r}: could not parse range {spec!r}."
            raise InvalidTermsError(msg) from None
        if step <= 0 or stop < start:
            msg = f"Term {name!r}: range {spec!r} must be increasing with a positive step."
            raise InvalidTermsError(msg)
        return TermSpec(name=name, sequence=(start, stop, step))

    values = tuple(_literal(token) for token in spec.split(",") if token.strip())
    return TermSpec(name=name, values=values)


def parse_term(term: str) -> TermSpec:
    """Parse a single term string such as ``"x [1, 2, 3]"``."""
    if not isinstance(term, str):
        msg = f"Terms must be strings, got {type(term).__name__}."
        raise InvalidTermsError(msg)
    match = _TERM.match(term)
    if match is None:
        msg = f"Could not parse term {term!r}."
        raise InvalidTermsError(msg)
    name = match.group("name").strip()
    spec = match.group("spec")
    if spec is None:
        return TermSpec(name=name)
    return _parse_bracket(name, spec)


def _from_mapping_value(name: str, value: Any) -> TermSpec:
    if value is None:
        return TermSpec(name=name)
    if isinstance(value, str):
        return _parse_bracket(name, value)
    values = np.asarray(value).ravel().tolist()
    if not values:
        msg = f"Empty value list for term {name!r}."
        raise InvalidTermsError(msg)
    return TermSpec(name=name, values=tuple(values))


def parse_terms(terms: TermsLike) -> list[TermSpec]:
    """Normalise any accepted terms spelling into a list of TermSpec.

    Raises:
        InvalidTermsError: If no term is given, more than
            :data:`MAX_TERMS` are given, a term cannot be parsed, or a
            predictor is named twice.
    """
    if isinstance(terms, str):
        specs = [parse_term(terms)]
    elif isinstance(terms, Mapping):
        specs = [_from_mapping_value(str(name), value) for name, value in terms.items()]
    elif isinstance(terms, Sequence):
        specs = [parse_term(term) for term in terms]
    else:
        msg = f"terms must be a string, a sequence of strings or a mapping, got {type(terms).__name__}."
        raise InvalidTermsError(msg)

    if not specs:
        msg = "At least one focal term is required."
        raise InvalidTermsError(msg)
    if len(specs) > MAX_TERMS:
        msg = f"At most {MAX_TERMS} focal terms are supported, got {len(specs)}."
        raise InvalidTermsError(msg)

    names = [spec.name for spec in specs]
    duplicates = sorted({name for name in names if names.count(name) > 1})
    if duplicates:
        msg = f"Focal terms must be distinct; repeated: {duplicates}."
        raise InvalidTermsError(msg)
    return specs
