"""Computation context: mutable accumulator for prediction artifacts.

A :class:`PredictionContext` travels through the prediction pipeline,
collecting intermediate artifacts at their natural computation points.
Downstream consumers (:func:`~adjusted_predictions.prediction_vcov`,
debugging, tests) read from the context instead of re-computing.

The context is **not** part of the public serialisation API: it carries
NumPy arrays and opaque model objects that should not be JSON'd.
:meth:`~_results.PredictionResult.to_dict` skips it automatically.

Lifecycle::

    ┌──────────────────────────────────────────────┐
    │  predict_response()                          │
    │  ├─ ctx = PredictionContext()                │
    │  ├─ PredictionEngine(…, ctx=ctx)             │
    │  │   ├─ ctx.adapter = resolve_adapter(…)     │
    │  │   ├─ ctx.model_terms = enumerate_terms(…) │
    │  │   ├─ ctx.grid = make_reference_grid(…)    │
    │  │   └─ ctx.backend = backend.name           │
    │  ├─ engine.run()                             │
    │  │   ├─ frame = adapter.predict(…)           │
    │  │   ├─ ctx.gradient / vcov / draws = …      │
    │  │   └─ result.context = ctx                 │
    │  └─ return result                            │
    └──────────────────────────────────────────────┘
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import numpy as np


@dataclass
class PredictionContext:
    """Mutable accumulator for prediction artifacts.

    Every field defaults to ``None`` (or an empty container) so the
    context can be created empty at the start of the pipeline and
    populated incrementally.  Consumers should check for ``None``
    before using a field: missing data means that stage has not run.
    """

    # ---- Adapter -------------------------------------------------
    adapter: Any = None
    """Resolved ``ModelAdapter`` instance."""

    adapter_name: str | None = None
    """Family tag of the adapter (e.g. ``"glm"``)."""

    model_terms: Any = None
    """``ModelTerms`` describing the model's predictors."""

    # ---- Grid ----------------------------------------------------
    grid: Any = None
    """The ``ReferenceGrid`` predictions were computed on."""

    # ---- Uncertainty ---------------------------------------------
    backend: str | None = None
    """Compute backend used for Jacobians (``"numpy"`` or ``"jax"``)."""

    method: str | None = None
    """Uncertainty path (``"delta"``, ``"jacobian"``, ``"simulation"``,
    ``"posterior"``)."""

    gradient: np.ndarray | None = None
    """Rows ``G`` with ``Cov(predictions) = G V G'``, in result-row order.

    ``None`` for simulation-based and prediction-interval paths.
    """

    vcov: np.ndarray | None = None
    """Parameter covariance matching :attr:`gradient`."""

    draws: np.ndarray | None = None
    """Simulated or posterior predictions ``(S, n_rows)``, if any."""

    seed: Any = None
    """Seed (or generator) used for simulation."""

    # ---- Warnings ------------------------------------------------
    warnings_captured: list[str] = field(default_factory=list)
    """Warning messages captured while calling into the model."""


__all__ = ["PredictionContext"]
