"""Typed result objects for adjusted predictions.

A frozen :class:`PredictionResult` wraps the tidy prediction table and
the metadata needed to interpret it, and provides:

* **Attribute access** — ``result.table``, ``result.type``, etc.
* **Dict-like access** — ``result["type"]``, ``result.get("key")``,
  ``"key" in result`` for consumers that prefer bracket syntax.
* **Serialisation** — ``.to_dict()`` returns a plain ``dict[str, Any]``
  with all NumPy types converted to native Python.

The table itself is produced by :func:`normalize_predictions`, the
only place that decides the column set and the row order:

=================  =====================================================
``x``              values of the first focal term
``predicted``      prediction on the response scale
``std.error``      standard error (see ``PredictionFrame.std_error``)
``conf.low``       lower interval bound
``conf.high``      upper interval bound
``group``          labels of the second focal term (``"1"`` if absent)
``facet``          labels of the third focal term (``"1"`` if absent)
``panel``          labels of the fourth focal term (``"1"`` if absent)
``response.level`` response category, or the response name
=================  =====================================================

Rows are ordered by ``response.level``, ``panel``, ``facet``,
``group`` and ``x``, each in grid order.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field, fields
from typing import TYPE_CHECKING, Any, ClassVar

import numpy as np
import pandas as pd

if TYPE_CHECKING:
    from ._context import PredictionContext
    from .adapters import PredictionFrame
    from .grid import ReferenceGrid

COLUMNS = (
    "x",
    "predicted",
    "std.error",
    "conf.low",
    "conf.high",
    "group",
    "facet",
    "panel",
    "response.level",
)
"""Column set of every prediction table, in order."""

_ROLE_COLUMNS = ("group", "facet", "panel")

# ------------------------------------------------------------------ #
# Serialisation helper
# ------------------------------------------------------------------ #


def _numpy_to_python(obj: Any) -> Any:
    """Recursively convert NumPy scalars/arrays to Python-native types.

    Handles nested dicts, lists, np.ndarray, np.integer, and
    np.floating so that :meth:`to_dict` returns a fully
    JSON-serialisable structure.
    """
    if isinstance(obj, np.ndarray):
        return obj.tolist()
    if isinstance(obj, (np.integer, np.bool_)):
        return int(obj)
    if isinstance(obj, np.floating):
        return float(obj)
    if isinstance(obj, dict):
        return {k: _numpy_to_python(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        converted = [_numpy_to_python(item) for item in obj]
        return type(obj)(converted)
    return obj


def _table_to_dict(table: pd.DataFrame) -> dict[str, list[Any]]:
    return {column: table[column].astype(object).tolist() for column in table.columns}


# ------------------------------------------------------------------ #
# Dict-compatibility mixin
# ------------------------------------------------------------------ #


class _DictAccessMixin:
    """Dict-like access convenience for result dataclasses.

    Supports three access patterns:

    1. ``result["key"]``     — raises ``KeyError`` on miss
    2. ``result.get(key, d)`` — returns *d* on miss (default ``None``)
    3. ``"key" in result``   — membership test

    Subclasses may override ``_SERIALIZERS`` to register custom
    conversion functions for non-primitive fields (e.g.
    ``DataFrame`` → column lists).  Serializers compose with
    :func:`_numpy_to_python`.
    """

    _SERIALIZERS: ClassVar[dict[str, Any]] = {}

    # Fields to exclude from to_dict() serialisation.
    _EXCLUDE_FROM_DICT: ClassVar[frozenset[str]] = frozenset({"context"})

    def __getitem__(self, key: str) -> Any:
        """Attribute lookup via bracket syntax."""
        try:
            return getattr(self, key)
        except AttributeError:
            raise KeyError(key) from None

    def get(self, key: str, default: Any = None) -> Any:
        """Attribute lookup with a fallback default."""
        return getattr(self, key, default)

    def __contains__(self, key: object) -> bool:
        """Membership test: ``"key" in result``."""
        if not isinstance(key, str):
            return False
        return hasattr(self, key)

    def to_dict(self) -> dict[str, Any]:
        """Convert to a plain dictionary.

        Applies per-field serializers from ``_SERIALIZERS``, then runs
        :func:`_numpy_to_python` on every value so the returned dict
        is fully JSON-serialisable.
        """
        result: dict[str, Any] = {}
        for f in fields(self):  # type: ignore[arg-type]
            if f.name in self._EXCLUDE_FROM_DICT:
                continue
            val = getattr(self, f.name)
            if f.name in self._SERIALIZERS:
                val = self._SERIALIZERS[f.name](val)
            result[f.name] = _numpy_to_python(val)
        return result


# ------------------------------------------------------------------ #
# PredictionResult
# ------------------------------------------------------------------ #


@dataclass(frozen=True)
class PredictionResult(_DictAccessMixin):
    """Adjusted predictions for one request.

    Returned by :func:`~adjusted_predictions.predict_response` and
    :func:`~adjusted_predictions.marginal_means`.  All fields are
    accessible both as attributes and via dict syntax.
    """

    table: pd.DataFrame = field(repr=False)
    """Tidy prediction table with the :data:`COLUMNS` schema."""

    terms: list[str]
    """Focal term names in positional order (x, group, facet, panel)."""

    type: str
    """Prediction type (e.g. ``"fe"``, ``"re"``, ``"fe.zi"``)."""

    ci_level: float
    """Confidence level of the bounds."""

    interval: str
    """``"confidence"`` or ``"prediction"``."""

    margin: str
    """How non-focal predictors were treated."""

    adapter: str
    """Family tag of the adapter that produced the predictions."""

    response: str
    """Name of the response variable."""

    method: str
    """Uncertainty path (``"delta"``, ``"jacobian"``, ``"simulation"``,
    ``"posterior"``)."""

    constant_values: dict[str, Any]
    """Values non-focal predictors were held at."""

    backend: str
    """Compute backend used for Jacobians."""

    context: PredictionContext | None = field(default=None, repr=False, compare=False)
    """Pipeline artifacts; excluded from :meth:`to_dict`."""

    _SERIALIZERS: ClassVar[dict[str, Any]] = {"table": _table_to_dict}

    def __len__(self) -> int:
        return len(self.table)

    def to_frame(self) -> pd.DataFrame:
        """Return a copy of the prediction table."""
        return self.table.copy()

    @property
    def predicted(self) -> np.ndarray:
        return self.table["predicted"].to_numpy()

    @property
    def conf_low(self) -> np.ndarray:
        return self.table["conf.low"].to_numpy()

    @property
    def conf_high(self) -> np.ndarray:
        return self.table["conf.high"].to_numpy()


# ------------------------------------------------------------------ #
# Result normaliser
# ------------------------------------------------------------------ #


def _labels(values: Sequence[Any]) -> list[str]:
    """String labels for focal values, compact for floats when unambiguous."""

    def compact(value: Any) -> str:
        if isinstance(value, (float, np.floating)):
            return format(float(value), "g")
        return str(value)

    labels = [compact(v) for v in values]
    if len(set(labels)) != len(labels):
        labels = [str(v) for v in values]
    return labels


def _x_column(grid: ReferenceGrid, name: str) -> np.ndarray:
    column = grid.data[name]
    if pd.api.types.is_numeric_dtype(column.dtype) and not pd.api.types.is_bool_dtype(column.dtype):
        return column.to_numpy(dtype=float)
    return np.asarray(column, dtype=object)


def normalize_predictions(
    grid: ReferenceGrid,
    frame: PredictionFrame,
    response: str,
) -> tuple[pd.DataFrame, np.ndarray]:
    """Lay out adapter output as the tidy prediction table.

    Args:
        grid: Reference grid the predictions were computed on.
        frame: Adapter output with arrays of shape ``(L, n_points)``.
        response: Response name, used as the single response level of
            single-response models.

    Returns:
        ``(table, order)`` where *order* maps each table row to its
        position in the level-major flattening of *frame*.
    """
    n_levels, n_points = frame.predicted.shape
    levels = list(frame.response_levels) if frame.response_levels is not None else [response]
    names = grid.term_names
    n_rows = n_levels * n_points

    table: dict[str, Any] = {"x": np.tile(_x_column(grid, names[0]), n_levels)}
    table["predicted"] = frame.predicted.ravel()
    table["std.error"] = frame.std_error.ravel()
    table["conf.low"] = frame.conf_low.ravel()
    table["conf.high"] = frame.conf_high.ravel()

    for position, role in enumerate(_ROLE_COLUMNS, start=1):
        if position < len(names):
            name = names[position]
            focal = list(grid.focal_values[name])
            categories = _labels(focal)
            lookup = dict(zip(map(repr, focal), categories))
            labels = [lookup.get(repr(v), str(v)) for v in grid.data[name].tolist()]
            table[role] = pd.Categorical(np.tile(labels, n_levels), categories=categories, ordered=True)
        else:
            table[role] = pd.Categorical(["1"] * n_rows, categories=["1"], ordered=True)

    table["response.level"] = pd.Categorical(
        np.repeat(levels, n_points), categories=levels, ordered=True
    )

    n_x = len(grid.focal_values[names[0]])
    out = pd.DataFrame(table, columns=list(COLUMNS))
    out["_x_position"] = np.tile(np.arange(n_points) % n_x, n_levels)
    out = out.sort_values(
        ["response.level", "panel", "facet", "group", "_x_position"], kind="mergesort"
    )
    order = out.index.to_numpy()
    out = out.drop(columns="_x_position").reset_index(drop=True)
    return out, order
