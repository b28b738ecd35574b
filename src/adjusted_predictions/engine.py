"""Prediction engine: resolution, grid construction, and dispatch.

The :class:`PredictionEngine` centralises everything that happens
*before* an adapter computes predictions:

1. **Adapter resolution** — map the fitted model to a
   ``ModelAdapter`` instance.
2. **Option resolution** — fill ``typical``, ``n_values`` and
   ``n_sims`` from :mod:`._config` and validate ``type``,
   ``ci_level`` and ``margin``.
3. **Term enumeration** — read the model's predictors, optionally
   replacing the model frame by user-supplied ``data``.
4. **Reference grid** — parse the terms and build the grid.
5. **Backend resolution** — NumPy finite differences or JAX autodiff
   for Jacobian-based intervals.

:meth:`PredictionEngine.run` then calls the adapter once and hands
its output to the result normaliser.
"""

from __future__ import annotations

import logging
import warnings
from collections.abc import Mapping
from typing import Any

import numpy as np

from ._backends import resolve_backend
from ._compat import DataFrameLike, to_pandas_frame
from ._config import _validate_option, get_option
from ._context import PredictionContext
from ._results import PredictionResult, normalize_predictions
from ._typing import TermsLike
from .adapters import GridDesign, ModelAdapter, PredictionRequest, resolve_adapter
from .exceptions import AdjustedPredictionsError, PredictionFailureError
from .grid import ReferenceGrid, make_reference_grid
from .terms import parse_terms
from .uncertainty import critical_value, resolve_rng

logger = logging.getLogger(__name__)


class PredictionEngine:
    """Builder that resolves the adapter, options and reference grid.

    Construct an engine, then call :meth:`run`.  The engine is
    immutable after construction: it captures a snapshot of the
    resolved state.

    Attributes:
        adapter: The resolved ``ModelAdapter`` instance.
        grid: The reference grid predictions are computed on.
        request: Per-call options handed to the adapter.
        backend_name: Active backend identifier (``"numpy"`` or
            ``"jax"``).
    """

    def __init__(
        self,
        results: Any,
        terms: TermsLike,
        *,
        type: str = "fe",
        ci_level: float = 0.95,
        margin: str = "mean_reference",
        typical: str | None = None,
        condition: Mapping[str, Any] | None = None,
        n_values: int | None = None,
        n_sims: int | None = None,
        seed: int | np.random.Generator | None = None,
        data: DataFrameLike | None = None,
        backend: str | None = None,
        ctx: PredictionContext | None = None,
    ) -> None:
        # ---- Context accumulator ----------------------------------
        self.ctx: PredictionContext = ctx if ctx is not None else PredictionContext()
        self.results = results

        # ---- Adapter resolution -----------------------------------
        self.adapter: ModelAdapter = resolve_adapter(results)
        self.ctx.adapter = self.adapter
        self.ctx.adapter_name = self.adapter.name

        if type not in self.adapter.supported_types:
            msg = (
                f"type={type!r} is not available for {self.adapter.name} models. "
                f"Choose from: {list(self.adapter.supported_types)}"
            )
            raise ValueError(msg)

        # ---- Options ----------------------------------------------
        z = critical_value(ci_level)
        typical = _validate_option("typical", typical if typical is not None else get_option("typical"))
        n_values = _validate_option("n_values", n_values if n_values is not None else get_option("n_values"))
        n_sims = _validate_option("n_sims", n_sims if n_sims is not None else get_option("n_sims"))

        # ---- Terms and grid ---------------------------------------
        model_terms = self.adapter.enumerate_terms(results)
        if data is not None:
            model_terms = model_terms.with_frame(to_pandas_frame(data, name="data"))
        self.model_terms = model_terms
        self.ctx.model_terms = model_terms

        specs = parse_terms(terms)
        self.adapter.validate_request(results, model_terms, tuple(spec.name for spec in specs), type)
        self.grid: ReferenceGrid = make_reference_grid(
            model_terms,
            specs,
            margin=margin,
            typical=typical,
            condition=condition,
            n_values=n_values,
        )
        self.ctx.grid = self.grid
        self.design = GridDesign(
            rows=self.grid.evaluation_rows,
            n_points=self.grid.n_points,
            row_index=self.grid.row_index,
            averaging=self.grid.averaging,
            term_names=tuple(self.grid.term_names),
        )

        # ---- Backend resolution -----------------------------------
        _backend = resolve_backend(backend)
        self.backend_name: str = _backend.name
        self.ctx.backend = _backend.name
        self.ctx.seed = seed

        self.request = PredictionRequest(
            type=type,
            ci_level=float(ci_level),
            z=z,
            n_sims=n_sims,
            rng=resolve_rng(seed),
            backend=_backend,
        )
        logger.debug(
            "Engine ready: adapter=%s type=%s margin=%s grid=%d backend=%s",
            self.adapter.name,
            type,
            margin,
            self.grid.n_points,
            self.backend_name,
        )

    def run(self) -> PredictionResult:
        """Compute predictions and return the normalised result.

        Raises:
            PredictionFailureError: If the adapter fails for a reason
                other than a package error (those propagate as-is).
        """
        caught: list[warnings.WarningMessage] = []
        try:
            with warnings.catch_warnings(record=True) as caught:
                warnings.simplefilter("always")
                frame = self.adapter.predict(self.results, self.design, self.request)
        except AdjustedPredictionsError:
            raise
        except (ValueError, TypeError, KeyError, IndexError, AttributeError, np.linalg.LinAlgError) as exc:
            msg = f"The {self.adapter.name} adapter failed to compute predictions: {exc}"
            raise PredictionFailureError(msg) from exc
        finally:
            self._replay_warnings(caught)

        table, order = normalize_predictions(self.grid, frame, self.model_terms.response)

        self.ctx.method = frame.method
        if frame.gradient is not None:
            self.ctx.gradient = np.asarray(frame.gradient)[order]
            self.ctx.vcov = frame.vcov
        if frame.draws is not None:
            self.ctx.draws = np.asarray(frame.draws)[:, order]
        logger.debug("Predictions computed via %s path: %d rows", frame.method, len(table))

        return PredictionResult(
            table=table,
            terms=self.grid.term_names,
            type=self.request.type,
            ci_level=self.request.ci_level,
            interval=frame.interval,
            margin=self.grid.margin,
            adapter=self.adapter.name,
            response=self.model_terms.response,
            method=frame.method,
            constant_values=dict(self.grid.constant_values),
            backend=self.backend_name,
            context=self.ctx,
        )

    def _replay_warnings(self, caught: list[warnings.WarningMessage]) -> None:
        """Record adapter warnings on the context and re-issue them."""
        for record in caught:
            self.ctx.warnings_captured.append(f"{record.category.__name__}: {record.message}")
            warnings.warn_explicit(record.message, record.category, record.filename, record.lineno)
        if caught:
            logger.debug("Adapter emitted %d warning(s)", len(caught))
