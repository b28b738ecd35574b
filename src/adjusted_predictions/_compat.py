"""Conversion of user-supplied frames to the model frame's layout.

The ``data`` argument of the public API replaces the model frame when
representative and typical values are chosen.  Grid rows built from
it are handed to patsy, which encodes them with the codings recorded
at fit time, so two things have to hold:

* the object is a :class:`pandas.DataFrame` (Polars frames, eager or
  lazy, are converted at the boundary);
* every column the model knows has the dtype patsy saw during
  fitting.  A Polars ``Categorical`` or ``Enum`` column arrives as a
  pandas categorical whose categories differ from the model's levels,
  which patsy rejects; integer columns of a float predictor are
  harmless but are cast for a uniform grid dtype.

Polars is **not** a required dependency.  Without it, only pandas
frames are accepted.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, TypeAlias

import pandas as pd

if TYPE_CHECKING:
    import polars as pl

    DataFrameLike: TypeAlias = pd.DataFrame | pl.DataFrame | pl.LazyFrame
else:
    DataFrameLike: TypeAlias = pd.DataFrame

try:
    import polars as pl

    _HAS_POLARS = True
except ImportError:
    _HAS_POLARS = False

logger = logging.getLogger(__name__)


def to_pandas_frame(obj: DataFrameLike, *, name: str = "input") -> pd.DataFrame:
    """Return *obj* as a :class:`pandas.DataFrame`.

    pandas frames are returned unchanged; ``polars.DataFrame`` is
    converted with ``.to_pandas()`` and ``polars.LazyFrame`` is
    collected first.

    Raises:
        TypeError: If *obj* is not a recognised DataFrame type.
    """
    if isinstance(obj, pd.DataFrame):
        return obj

    if _HAS_POLARS:
        if isinstance(obj, pl.LazyFrame):
            obj = obj.collect()
        if isinstance(obj, pl.DataFrame):
            return obj.to_pandas()

    accepted = "a pandas DataFrame or Polars DataFrame/LazyFrame" if _HAS_POLARS else "a pandas DataFrame"
    msg = f"'{name}' must be {accepted}, got {type(obj).__name__}."
    raise TypeError(msg)


def align_dtypes(frame: pd.DataFrame, reference: pd.DataFrame) -> pd.DataFrame:
    """Cast the columns of *frame* to the dtypes of *reference*.

    Only columns present in both frames are touched; *frame* is not
    modified in place.

    Raises:
        ValueError: If a column cannot be converted (e.g. text in a
            numeric predictor).
    """
    shared = [column for column in frame.columns if column in reference.columns]
    casts = {}
    for column in shared:
        target = reference[column].dtype
        current = frame[column].dtype
        if current == target:
            continue
        if isinstance(target, pd.CategoricalDtype):
            casts[column] = target
        elif pd.api.types.is_bool_dtype(target):
            casts[column] = bool
        elif pd.api.types.is_numeric_dtype(target):
            if not pd.api.types.is_numeric_dtype(current):
                msg = f"Column {column!r} is numeric in the model but has dtype {current} in 'data'."
                raise ValueError(msg)
            casts[column] = float
        elif isinstance(current, pd.CategoricalDtype) or pd.api.types.is_string_dtype(current):
            casts[column] = object
    if not casts:
        return frame
    logger.debug("Aligning 'data' dtypes to the model frame: %s", sorted(casts))
    return frame.astype(casts)
