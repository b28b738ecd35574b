"""JAX backend: exact Jacobians via forward-mode autodiff.

``jax.jacfwd`` differentiates the prediction function exactly, so the
delta-method standard errors carry no finite-difference step error.
Forward mode is the natural choice here: the parameter vector is
short (``k`` is the number of model coefficients) while the output
may be long (one value per grid point and response level).

Both methods return **NumPy arrays**, keeping the rest of the package
free of JAX array semantics.  When JAX is absent the module still
imports; ``is_available`` returns ``False`` and
:func:`~adjusted_predictions._backends.resolve_backend` gates on that.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from . import PredictionFunction

# ------------------------------------------------------------------ #
# Optional JAX import
# ------------------------------------------------------------------ #

try:
    import jax

    # Predictions and their gradients are compared against float64
    # statsmodels output; float32 would lose ~8 significant digits.
    jax.config.update("jax_enable_x64", True)

    import jax.numpy as jnp

    _CAN_IMPORT_JAX = True
except ImportError:
    _CAN_IMPORT_JAX = False


@dataclass(frozen=True)
class JaxBackend:
    """Autodiff Jacobians with ``jax.jacfwd``."""

    @property
    def name(self) -> str:
        return "jax"

    @property
    def is_available(self) -> bool:
        return _CAN_IMPORT_JAX

    def jacobian(self, fn: PredictionFunction, params: np.ndarray) -> np.ndarray:
        def _flat(p):
            return jnp.ravel(fn(p, jnp))

        J = jax.jacfwd(_flat)(jnp.asarray(params, dtype=jnp.float64))
        return np.asarray(J)

    def quadratic_form(self, J: np.ndarray, V: np.ndarray) -> np.ndarray:
        return np.asarray(jnp.einsum("ij,jk,ik->i", jnp.asarray(J), jnp.asarray(V), jnp.asarray(J)))
