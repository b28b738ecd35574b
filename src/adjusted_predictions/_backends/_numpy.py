"""NumPy backend (always available).

Jacobians are approximated by central finite differences.  The step
for parameter ``j`` is ``h_j = ε^(1/3) · max(|β_j|, 1)`` with ``ε``
the float64 machine epsilon, which balances truncation error
(``O(h²)``) against round-off (``O(ε/h)``) for smooth prediction
functions.

Prediction functions are evaluated with ``xp=numpy``; no other
dependency is required.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from . import PredictionFunction

_STEP_SCALE: float = float(np.finfo(float).eps) ** (1.0 / 3.0)


@dataclass(frozen=True)
class NumpyBackend:
    """Finite-difference Jacobians on plain NumPy arrays."""

    @property
    def name(self) -> str:
        return "numpy"

    @property
    def is_available(self) -> bool:
        return True

    def jacobian(self, fn: PredictionFunction, params: np.ndarray) -> np.ndarray:
        params = np.asarray(params, dtype=float)
        k = params.shape[0]
        base = np.asarray(fn(params, np), dtype=float).ravel()
        J = np.empty((base.shape[0], k))
        for j in range(k):
            h = _STEP_SCALE * max(abs(params[j]), 1.0)
            up = params.copy()
            down = params.copy()
            up[j] += h
            down[j] -= h
            f_up = np.asarray(fn(up, np), dtype=float).ravel()
            f_down = np.asarray(fn(down, np), dtype=float).ravel()
            J[:, j] = (f_up - f_down) / (2.0 * h)
        return J

    def quadratic_form(self, J: np.ndarray, V: np.ndarray) -> np.ndarray:
        # einsum avoids materialising the (m, m) matrix J V J'.
        return np.einsum("ij,jk,ik->i", J, V, J)
