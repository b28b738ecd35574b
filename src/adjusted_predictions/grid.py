"""Reference-grid construction.

The reference grid is the set of predictor combinations at which
predictions are computed.  It is the Cartesian product of the focal
terms' representative values, combined with the non-focal predictors
according to the *margin*:

``"mean_reference"`` (default)
    Continuous non-focal predictors at their typical value (mean or
    median), categorical ones at the reference (first) level.

``"mean_mode"``
    As above, but categorical non-focal predictors at their most
    frequent level.

``"marginal_means"``
    Continuous non-focal predictors at their typical value; the grid is
    expanded over every level combination of the categorical non-focal
    predictors and the design rows are averaged with equal weights on
    the link scale (estimated marginal means).

``"empirical"``
    Counterfactual averaging: every grid point is imposed on every
    observed row of the data and predictions are averaged on the
    response scale.

Values passed through ``condition`` always win over the margin's rule.

Row order of the grid: the first term varies fastest, the fourth
slowest.  The result normaliser relies on that order.
"""

from __future__ import annotations

import itertools
import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

import numpy as np
import pandas as pd

from ._design import ModelTerms
from .exceptions import InvalidTermsError
from .terms import TermSpec

logger = logging.getLogger(__name__)

MARGINS = ("mean_reference", "mean_mode", "marginal_means", "empirical")


@dataclass(frozen=True)
class ReferenceGrid:
    """Grid of predictor combinations for one prediction request.

    Attributes:
        terms: Parsed focal terms in positional order.
        focal_values: Focal term name → representative values (in the
            order they appear in the result).
        data: One row per grid point with every predictor column.  For
            averaging margins, non-focal columns that are averaged over
            are absent.
        margin: Margin used to treat non-focal predictors.
        constant_values: Non-focal predictor → the value it is held at.
        rows: Expanded evaluation rows for averaging margins (``None``
            otherwise).
        row_index: For each row of *rows*, the grid point it belongs to.
        averaging: ``"link"`` (average design rows), ``"response"``
            (average predictions) or ``None``.
    """

    terms: tuple[TermSpec, ...]
    focal_values: dict[str, tuple[Any, ...]]
    data: pd.DataFrame = field(repr=False)
    margin: str
    constant_values: dict[str, Any]
    rows: pd.DataFrame | None = field(default=None, repr=False)
    row_index: np.ndarray | None = field(default=None, repr=False)
    averaging: str | None = None

    @property
    def n_points(self) -> int:
        return len(self.data)

    @property
    def term_names(self) -> list[str]:
        return [term.name for term in self.terms]

    @property
    def evaluation_rows(self) -> pd.DataFrame:
        """Rows the model is evaluated at (expanded rows when averaging)."""
        return self.rows if self.rows is not None else self.data


# ------------------------------------------------------------------ #
# Representative values
# ------------------------------------------------------------------ #


def _range_values(lower: float, upper: float, n: int) -> np.ndarray:
    if lower == upper:
        return np.array([lower], dtype=float)
    return np.linspace(lower, upper, n)


def representative_values(
    series: pd.Series,
    term: TermSpec,
    *,
    levels: Sequence[Any] | None = None,
    n_values: int = 25,
) -> tuple[Any, ...]:
    """Resolve the values a focal term is evaluated at.

    Args:
        series: Observed values of the predictor.
        term: Parsed focal term.
        levels: Observed levels when the predictor is categorical.
        n_values: Density of automatic ranges for continuous terms.

    Returns:
        Tuple of values in result order.

    Raises:
        InvalidTermsError: If explicit values are not valid for the
            predictor, or a shortcut is applied to a categorical term.
    """
    if levels is not None:
        return _categorical_values(term, levels)

    observed = pd.to_numeric(series, errors="coerce").dropna().to_numpy(dtype=float)
    if observed.size == 0:
        msg = f"Predictor {term.name!r} has no observed numeric values."
        raise InvalidTermsError(msg)
    lower, upper = float(observed.min()), float(observed.max())

    if term.values is not None:
        try:
            values = np.asarray([float(v) for v in term.values])
        except (TypeError, ValueError):
            msg = f"Term {term.name!r} is continuous; values must be numeric, got {list(term.values)}."
            raise InvalidTermsError(msg) from None
        return tuple(np.unique(values).tolist())

    if term.n_values is not None:
        return tuple(_range_values(lower, upper, term.n_values).tolist())

    if term.sequence is not None:
        start, stop, step = term.sequence
        values = np.arange(start, stop + step / 2.0, step)
        return tuple(values.tolist())

    if term.shortcut is not None:
        return tuple(_shortcut_values(term.shortcut, observed, n_values).tolist())

    distinct = np.unique(observed)
    if distinct.size <= n_values:
        return tuple(distinct.tolist())
    return tuple(_range_values(lower, upper, n_values).tolist())


def _shortcut_values(shortcut: str, observed: np.ndarray, n_values: int) -> np.ndarray:
    if shortcut == "meansd":
        mean = observed.mean()
        sd = observed.std(ddof=1) if observed.size > 1 else 0.0
        return np.unique([mean - sd, mean, mean + sd])
    if shortcut == "minmax":
        return np.unique([observed.min(), observed.max()])
    if shortcut == "quart":
        return np.unique(np.quantile(observed, [0.0, 0.25, 0.5, 0.75, 1.0]))
    if shortcut == "quart2":
        return np.unique(np.quantile(observed, [0.25, 0.5, 0.75]))
    if shortcut == "zeromax":
        return _range_values(0.0, float(observed.max()), n_values)
    # "all"
    return np.unique(observed)


def _match_level(value: Any, levels: Sequence[Any]) -> Any:
    for level in levels:
        if value == level or str(value) == str(level):
            return level
    if isinstance(value, float) and value.is_integer():
        return _match_level(str(int(value)), levels)
    raise KeyError(value)


def _categorical_values(term: TermSpec, levels: Sequence[Any]) -> tuple[Any, ...]:
    if term.values is not None:
        resolved = []
        for value in term.values:
            try:
                level = _match_level(value, levels)
            except KeyError:
                msg = (
                    f"Value {value!r} is not an observed level of {term.name!r}. "
                    f"Levels: {list(levels)}."
                )
                raise InvalidTermsError(msg) from None
            if level not in resolved:
                resolved.append(level)
        return tuple(resolved)
    if term.is_automatic or term.shortcut == "all":
        return tuple(levels)
    msg = f"Term {term.name!r} is categorical; only explicit levels or [all] are accepted."
    raise InvalidTermsError(msg)


def typical_value(series: pd.Series, typical: str) -> float:
    """Typical value of a continuous predictor (``"mean"`` or ``"median"``)."""
    numeric = pd.to_numeric(series, errors="coerce").dropna()
    if typical == "median":
        return float(numeric.median())
    return float(numeric.mean())


def _mode_level(series: pd.Series, levels: Sequence[Any]) -> Any:
    counts = series.value_counts(dropna=True)
    # Ties resolve to the earliest level in coding order.
    best = max(levels, key=lambda level: (counts.get(level, 0), -levels.index(level)))
    return best


# ------------------------------------------------------------------ #
# Column construction
# ------------------------------------------------------------------ #


def _column_like(template: pd.Series, values: Sequence[Any] | np.ndarray) -> Any:
    """Array of *values* with a dtype patsy will code like *template*."""
    if isinstance(template.dtype, pd.CategoricalDtype):
        return pd.Categorical(values, categories=template.cat.categories)
    if pd.api.types.is_bool_dtype(template.dtype):
        return np.asarray(values, dtype=bool)
    if pd.api.types.is_numeric_dtype(template.dtype):
        return np.asarray(values, dtype=float)
    return np.asarray(values, dtype=object)


def _validate_terms(model_terms: ModelTerms, terms: Sequence[TermSpec]) -> None:
    candidates = model_terms.focal_candidates
    unknown = [term.name for term in terms if term.name not in candidates]
    if unknown:
        msg = (
            f"Term(s) {unknown} not found in the model. "
            f"Available predictors: {list(candidates)}."
        )
        raise InvalidTermsError(msg)


def make_reference_grid(
    model_terms: ModelTerms,
    terms: Sequence[TermSpec],
    *,
    margin: str = "mean_reference",
    typical: str = "mean",
    condition: Mapping[str, Any] | None = None,
    n_values: int = 25,
) -> ReferenceGrid:
    """Build the reference grid for *terms*.

    Args:
        model_terms: Description of the model's predictors.
        terms: Parsed focal terms (1–4).
        margin: One of :data:`MARGINS`.
        typical: Typical-value function for continuous non-focal
            predictors (``"mean"`` or ``"median"``).
        condition: Fixed values for non-focal predictors.
        n_values: Density of automatic ranges for continuous terms.

    Returns:
        A :class:`ReferenceGrid`.

    Raises:
        InvalidTermsError: For unknown terms, terms listed in
            *condition*, or invalid values.
        ValueError: For an unknown *margin* or *condition* key.
    """
    if margin not in MARGINS:
        msg = f"Unknown margin {margin!r}. Choose from: {list(MARGINS)}"
        raise ValueError(msg)
    _validate_terms(model_terms, terms)
    condition = dict(condition or {})
    frame = model_terms.frame
    focal_names = [term.name for term in terms]

    clashing = sorted(set(condition) & set(focal_names))
    if clashing:
        msg = f"Focal term(s) {clashing} cannot also be fixed through 'condition'."
        raise InvalidTermsError(msg)
    unknown = sorted(set(condition) - set(model_terms.predictors))
    if unknown:
        msg = f"'condition' names unknown predictor(s) {unknown}."
        raise ValueError(msg)

    # ---- Focal values -------------------------------------------------
    focal_values: dict[str, tuple[Any, ...]] = {}
    for term in terms:
        levels = model_terms.categorical.get(term.name)
        focal_values[term.name] = representative_values(
            frame[term.name], term, levels=levels, n_values=n_values
        )

    # itertools.product varies its last argument fastest, so the terms
    # are passed in reverse to make the first term the fastest.
    reversed_names = focal_names[::-1]
    combos = list(itertools.product(*(focal_values[name] for name in reversed_names)))
    data = pd.DataFrame(
        {
            name: _column_like(frame[name], [combo[i] for combo in combos])
            for i, name in enumerate(reversed_names)
        }
    )[focal_names]

    # ---- Non-focal predictors -----------------------------------------
    non_focal = [name for name in model_terms.predictors if name not in focal_names]
    constant_values: dict[str, Any] = {}
    averaged: list[str] = []
    for name in non_focal:
        if name in condition:
            constant_values[name] = condition[name]
            continue
        levels = model_terms.categorical.get(name)
        if margin == "empirical":
            averaged.append(name)
        elif levels is None:
            constant_values[name] = typical_value(frame[name], typical)
        elif margin == "marginal_means":
            averaged.append(name)
        elif margin == "mean_mode":
            constant_values[name] = _mode_level(frame[name], list(levels))
        else:
            constant_values[name] = levels[0]

    for name, value in constant_values.items():
        data[name] = _column_like(frame[name], [value] * len(data))

    rows: pd.DataFrame | None = None
    row_index: np.ndarray | None = None
    averaging: str | None = None
    if margin == "empirical":
        rows, row_index = _counterfactual_rows(frame, data, averaged)
        averaging = "response"
    elif averaged:
        rows, row_index = _level_combination_rows(frame, data, model_terms, averaged)
        averaging = "link"

    logger.debug(
        "Reference grid: %d points (%s), margin=%s, evaluation rows=%d",
        len(data),
        " x ".join(f"{name}[{len(focal_values[name])}]" for name in focal_names),
        margin,
        len(rows) if rows is not None else len(data),
    )
    return ReferenceGrid(
        terms=tuple(terms),
        focal_values=focal_values,
        data=data,
        margin=margin,
        constant_values=constant_values,
        rows=rows,
        row_index=row_index,
        averaging=averaging,
    )


def _level_combination_rows(
    frame: pd.DataFrame,
    data: pd.DataFrame,
    model_terms: ModelTerms,
    averaged: Sequence[str],
) -> tuple[pd.DataFrame, np.ndarray]:
    """Cross every grid point with all level combinations of *averaged*."""
    combos = list(itertools.product(*(model_terms.categorical[name] for name in averaged)))
    levels = pd.DataFrame(
        {
            name: _column_like(frame[name], [combo[i] for combo in combos])
            for i, name in enumerate(averaged)
        }
    )
    rows = data.merge(levels, how="cross")
    row_index = np.repeat(np.arange(len(data)), len(levels))
    return rows, row_index


def _counterfactual_rows(
    frame: pd.DataFrame,
    data: pd.DataFrame,
    averaged: Sequence[str],
) -> tuple[pd.DataFrame, np.ndarray]:
    """Impose every grid point on every observed row."""
    observed = frame[list(averaged)].dropna()
    n_obs = len(observed)
    n_points = len(data)
    rows = observed.iloc[np.tile(np.arange(n_obs), n_points)].reset_index(drop=True)
    for name in averaged:
        rows[name] = _column_like(frame[name], rows[name].to_numpy())
    for name in data.columns:
        template = frame[name] if name in frame.columns else data[name]
        rows[name] = _column_like(template, np.repeat(data[name].to_numpy(), n_obs))
    row_index = np.repeat(np.arange(n_points), n_obs)
    return rows, row_index
