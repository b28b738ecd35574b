"""Model-frame access and design-matrix construction.

Adjusted predictions are evaluated on *new* rows (the reference grid),
so every adapter needs to turn a frame of raw predictor values into
the model's design matrix.  statsmodels keeps what is needed for that
on ``results.model.data``:

* **Formula models** (``smf.ols``, ``Model.from_formula``) store the
  patsy encoding (``model_spec``, or ``design_info`` before
  statsmodels 0.15) of the right-hand side and the original data
  frame.  ``patsy.build_design_matrices`` replays the same coding
  (treatment contrasts, stateful transforms such as ``center()``,
  ``np.log()`` calls, interactions) on the grid rows.
* **Array models** (``sm.OLS(y, X)`` with a pandas ``X``) have no
  formula; the exog columns *are* the predictors and the grid rows are
  laid out in ``exog_names`` order with constant columns filled in.

:class:`ModelTerms` is the adapter-neutral description of a model's
predictors that the reference-grid builder consumes.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

import numpy as np
import pandas as pd
import patsy

from ._compat import align_dtypes
from .exceptions import PredictionFailureError, UnsupportedModelError

logger = logging.getLogger(__name__)

_CONSTANT_NAMES = frozenset({"const", "Intercept", "intercept"})

_IDENTIFIER = re.compile(r"[A-Za-z_][A-Za-z0-9_.]*")

_SPEC_ATTRIBUTES = ("model_spec", "design_info")


@dataclass(frozen=True)
class ModelTerms:
    """Adapter-neutral description of a fitted model's predictors.

    Attributes:
        response: Name of the response variable.
        predictors: Predictor variable names in formula order.
        categorical: Mapping of categorical predictor name → observed
            levels in coding order (the first level is the reference).
        frame: Data frame holding (at least) every predictor column,
            restricted to the rows used in estimation.
        random: Grouping variable names of random effects.
        zero_inflation: Predictor names of a zero-inflation submodel.
        survival_time: Name of the survival time variable, which may
            be used as a focal term for survival-type predictions.
    """

    response: str
    predictors: tuple[str, ...]
    categorical: dict[str, tuple[Any, ...]]
    frame: pd.DataFrame = field(repr=False)
    random: tuple[str, ...] = ()
    zero_inflation: tuple[str, ...] = ()
    survival_time: str | None = None

    def is_categorical(self, name: str) -> bool:
        return name in self.categorical

    @property
    def focal_candidates(self) -> tuple[str, ...]:
        """Names accepted as focal terms."""
        if self.survival_time is not None and self.survival_time not in self.predictors:
            return (*self.predictors, self.survival_time)
        return self.predictors

    def with_frame(self, frame: pd.DataFrame) -> ModelTerms:
        """Return a copy whose representative values come from *frame*.

        Categorical levels are kept from the model so that the grid
        never contains a level the design matrix cannot encode.
        """
        missing = [name for name in self.focal_candidates if name not in frame.columns]
        if missing:
            msg = f"'data' is missing predictor column(s): {missing}."
            raise ValueError(msg)
        frame = align_dtypes(frame, self.frame)
        return ModelTerms(
            response=self.response,
            predictors=self.predictors,
            categorical=self.categorical,
            frame=frame,
            random=self.random,
            zero_inflation=self.zero_inflation,
            survival_time=self.survival_time,
        )


# ------------------------------------------------------------------ #
# Model-frame access
# ------------------------------------------------------------------ #


def formula_design(data: Any) -> patsy.DesignInfo | None:
    """Return the patsy ``DesignInfo`` stored on a model's *data*, else ``None``.

    statsmodels 0.15 keeps the right-hand-side encoding as
    ``data.model_spec``; 0.14 keeps it as ``data.design_info``.

    Raises:
        UnsupportedModelError: If the model was built by a formula
            engine other than patsy.
    """
    for attribute in _SPEC_ATTRIBUTES:
        info = getattr(data, attribute, None)
        if info is not None:
            break
    else:
        return None
    if not isinstance(info, patsy.DesignInfo):
        engine = type(info).__module__.split(".")[0]
        msg = (
            f"Formula models built with the {engine!r} formula engine are not "
            "supported.  Set statsmodels.formula.options.formula_engine = 'patsy' "
            "before fitting."
        )
        raise UnsupportedModelError(msg)
    return info


def design_info(sm_model: Any) -> patsy.DesignInfo | None:
    """Return the patsy ``DesignInfo`` of a formula model, else ``None``."""
    return formula_design(getattr(sm_model, "data", None))


def _is_constant_column(name: str, values: np.ndarray) -> bool:
    if name in _CONSTANT_NAMES:
        return True
    values = np.asarray(values, dtype=float)
    return values.size > 0 and bool(np.all(values == 1.0))


def exog_names(sm_model: Any) -> list[str]:
    names = getattr(sm_model, "exog_names", None)
    if names is None:
        return [f"x{i}" for i in range(np.asarray(sm_model.exog).shape[1])]
    return list(names)


def model_frame(sm_model: Any, names: Sequence[str] | None = None) -> pd.DataFrame:
    """Return the estimation data of *sm_model* as a DataFrame.

    For formula models this is the original data restricted to the
    rows statsmodels kept after missing-value handling.  For array
    models the exog matrix is wrapped with its column names.
    """
    data = sm_model.data
    frame = getattr(data, "frame", None)
    if isinstance(frame, pd.DataFrame) and design_info(sm_model) is not None:
        row_labels = getattr(data, "row_labels", None)
        if row_labels is not None and len(row_labels) != len(frame):
            frame = frame.loc[row_labels]
        return frame
    orig_exog = getattr(data, "orig_exog", None)
    if isinstance(orig_exog, pd.DataFrame):
        return orig_exog
    columns = list(names) if names is not None else exog_names(sm_model)
    return pd.DataFrame(np.asarray(sm_model.exog), columns=columns)


def response_name(sm_model: Any) -> str:
    name = getattr(sm_model, "endog_names", None)
    if isinstance(name, (list, tuple)):
        name = name[0] if name else None
    return str(name) if name is not None else "y"


def _formula_codes(info: Any) -> list[str]:
    """Factor codes of a patsy DesignInfo (e.g. ``"C(g)"``, ``"np.log(x)"``)."""
    return [factor.name() for factor in info.factor_infos]


def referenced_columns(
    codes: Sequence[str],
    frame: pd.DataFrame,
    exclude: Sequence[str] = (),
) -> list[str]:
    """Frame columns named by identifiers in *codes*, in first-seen order."""
    columns = set(map(str, frame.columns))
    found: list[str] = []
    for code in codes:
        for token in _IDENTIFIER.findall(code):
            if token in columns and token not in exclude and token not in found:
                found.append(token)
    return found


def predictor_names(
    sm_model: Any,
    frame: pd.DataFrame,
    names: Sequence[str] | None = None,
) -> list[str]:
    """Raw predictor variables referenced by the model's design.

    For formula models, identifiers in the right-hand-side factor
    codes are matched against the frame columns, so ``np.log(x)`` and
    ``C(g, Sum)`` both resolve to their underlying variables.
    """
    info = design_info(sm_model)
    response = response_name(sm_model)
    if info is None:
        exog = np.asarray(sm_model.exog)
        return [
            name
            for j, name in enumerate(names if names is not None else exog_names(sm_model))
            if not _is_constant_column(name, exog[:, j])
        ]
    return referenced_columns(_formula_codes(info), frame, exclude=(response,))


def _categorical_in_formula(name: str, codes: Sequence[str]) -> bool:
    pattern = re.compile(rf"\bC\(\s*{re.escape(name)}\b")
    return any(pattern.search(code) for code in codes)


def observed_levels(series: pd.Series) -> tuple[Any, ...]:
    """Observed levels of a categorical series in coding order.

    Pandas categoricals keep their category order (restricted to the
    levels present); other dtypes are sorted, which is the order
    patsy's treatment coding uses.
    """
    values = series.dropna()
    if isinstance(series.dtype, pd.CategoricalDtype):
        present = set(values.unique())
        return tuple(level for level in series.cat.categories if level in present)
    uniques = pd.unique(values)
    try:
        return tuple(sorted(uniques))
    except TypeError:
        return tuple(sorted(uniques, key=str))


def categorical_levels(
    sm_model: Any,
    frame: pd.DataFrame,
    predictors: Sequence[str],
) -> dict[str, tuple[Any, ...]]:
    """Detect categorical predictors and their levels."""
    info = design_info(sm_model)
    codes = _formula_codes(info) if info is not None else []
    levels: dict[str, tuple[Any, ...]] = {}
    for name in predictors:
        series = frame[name]
        dtype = series.dtype
        is_cat = (
            isinstance(dtype, pd.CategoricalDtype)
            or pd.api.types.is_object_dtype(dtype)
            or pd.api.types.is_bool_dtype(dtype)
            or pd.api.types.is_string_dtype(dtype)
            or _categorical_in_formula(name, codes)
        )
        if is_cat:
            levels[name] = observed_levels(series)
    return levels


def describe_model(
    sm_model: Any,
    *,
    names: Sequence[str] | None = None,
    **roles: Any,
) -> ModelTerms:
    """Build :class:`ModelTerms` for a statsmodels model instance.

    Args:
        sm_model: The ``results.model`` object.
        names: Names of the design columns, when ``exog_names`` also
            lists auxiliary parameters.
        **roles: Extra role fields forwarded to :class:`ModelTerms`
            (``random``, ``zero_inflation``, ``survival_time``).
    """
    frame = model_frame(sm_model, names)
    predictors = predictor_names(sm_model, frame, names)
    categorical = categorical_levels(sm_model, frame, predictors)
    logger.debug(
        "Model %s: predictors=%s categorical=%s",
        type(sm_model).__name__,
        predictors,
        sorted(categorical),
    )
    return ModelTerms(
        response=response_name(sm_model),
        predictors=tuple(predictors),
        categorical=categorical,
        frame=frame,
        **roles,
    )


# ------------------------------------------------------------------ #
# Design-matrix construction
# ------------------------------------------------------------------ #


def build_exog(
    sm_model: Any,
    rows: pd.DataFrame,
    names: Sequence[str] | None = None,
) -> np.ndarray:
    """Design matrix of *sm_model* evaluated at *rows*.

    Args:
        sm_model: The ``results.model`` object.
        rows: Frame with one column per predictor.
        names: Names of the design columns (defaults to
            ``exog_names``).

    Returns:
        Array of shape ``(len(rows), k)`` in ``exog_names`` order.

    Raises:
        PredictionFailureError: If patsy cannot encode the rows or the
            resulting column count does not match the model.
    """
    info = design_info(sm_model)
    names = list(names) if names is not None else exog_names(sm_model)
    try:
        if info is not None:
            (matrix,) = patsy.build_design_matrices([info], rows, NA_action="raise")
            X = np.asarray(matrix, dtype=float)
        else:
            exog = np.asarray(sm_model.exog)
            columns = []
            for j, name in enumerate(names):
                if _is_constant_column(name, exog[:, j]) and name not in rows.columns:
                    columns.append(np.full(len(rows), exog[0, j], dtype=float))
                else:
                    columns.append(np.asarray(rows[name], dtype=float))
            X = np.column_stack(columns) if columns else np.empty((len(rows), 0))
    except (patsy.PatsyError, KeyError, ValueError, TypeError) as exc:
        msg = f"Could not build the design matrix for the reference grid: {exc}"
        raise PredictionFailureError(msg) from exc

    if X.shape[1] != len(names):
        msg = (
            f"Design matrix has {X.shape[1]} columns but the model has "
            f"{len(names)} parameters in its design ({names})."
        )
        raise PredictionFailureError(msg)
    return X


def build_named_columns(
    names: Sequence[str],
    rows: pd.DataFrame,
    reference_names: Sequence[str],
    reference_X: np.ndarray,
) -> np.ndarray | None:
    """Assemble a design from columns that already exist elsewhere.

    Used for auxiliary designs that statsmodels stores as bare arrays
    (zero-inflation and random-effect designs).  Each requested name
    is resolved, in order, as an intercept, a column of
    *reference_X* (the conditional-model design with
    *reference_names*), or a numeric column of *rows*.

    Returns:
        ``(len(rows), len(names))`` array, or ``None`` if any name
        cannot be resolved.
    """
    lookup = {name: j for j, name in enumerate(reference_names)}
    columns = []
    for name in names:
        if name in _CONSTANT_NAMES:
            columns.append(np.ones(len(rows)))
        elif name in lookup:
            columns.append(reference_X[:, lookup[name]])
        elif name in rows.columns and pd.api.types.is_numeric_dtype(rows[name]):
            columns.append(np.asarray(rows[name], dtype=float))
        else:
            return None
    return np.column_stack(columns) if columns else np.empty((len(rows), 0))
