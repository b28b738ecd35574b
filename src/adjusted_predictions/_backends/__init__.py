"""Backend abstraction layer for delta-method Jacobians.

Most adjusted predictions only need the design row ``x`` to propagate
parameter uncertainty (``Var(x'β) = x' V x``).  Some prediction
functions are non-linear in the parameters and have no closed-form
gradient at hand: category probabilities of ordinal and multinomial
models, predictions averaged on the response scale over the observed
data, baseline-hazard transforms.  For those the engine needs the
Jacobian ``J = ∂f(β)/∂β`` and then projects ``diag(J V J')``.

Each backend implements the :class:`BackendProtocol` interface.  The
prediction functions handed to a backend are written against an array
namespace argument ``xp`` (``numpy`` or ``jax.numpy``), so the same
function can be differentiated numerically or by autodiff.

Resolution follows the policy set by :mod:`._config`:

1. Programmatic override via :func:`~adjusted_predictions.set_backend`.
2. ``ADJUSTED_PREDICTIONS_BACKEND`` environment variable.
3. Auto-detection: ``"jax"`` if importable, else ``"numpy"``.

An explicit ``"jax"`` request without JAX installed raises
:class:`ImportError` instead of falling back to ``"numpy"``.
"""

from __future__ import annotations

from collections.abc import Callable
from types import ModuleType
from typing import Any, Protocol, runtime_checkable

import numpy as np

from .._config import get_backend

PredictionFunction = Callable[[Any, ModuleType], Any]
"""``fn(params, xp) -> 1-D array`` evaluated with array namespace *xp*."""


@runtime_checkable
class BackendProtocol(Protocol):
    """Interface that every compute backend must implement.

    Attributes:
        name: Short identifier (e.g. ``"numpy"``, ``"jax"``).
    """

    @property
    def name(self) -> str: ...

    @property
    def is_available(self) -> bool:
        """Whether the backend's dependencies are importable."""
        ...

    def jacobian(self, fn: PredictionFunction, params: np.ndarray) -> np.ndarray:
        """Jacobian of *fn* at *params*.

        Args:
            fn: Prediction function ``fn(params, xp)`` returning a
                vector of length ``m``.
            params: Parameter vector of length ``k``.

        Returns:
            Jacobian of shape ``(m, k)`` as a NumPy array.
        """
        ...

    def quadratic_form(self, J: np.ndarray, V: np.ndarray) -> np.ndarray:
        """Row-wise quadratic form ``diag(J V J')``.

        Args:
            J: Gradient rows ``(m, k)``.
            V: Covariance matrix ``(k, k)``.

        Returns:
            Variances of shape ``(m,)``.
        """
        ...


# ------------------------------------------------------------------ #
# Backend resolution
# ------------------------------------------------------------------ #

# Singleton cache, one instance per backend name.
_BACKEND_CACHE: dict[str, BackendProtocol] = {}


def _numpy_backend() -> BackendProtocol:
    from ._numpy import NumpyBackend

    return NumpyBackend()


def _jax_backend() -> BackendProtocol:
    from ._jax import JaxBackend

    return JaxBackend()


_FACTORIES: dict[str, Callable[[], BackendProtocol]] = {
    "numpy": _numpy_backend,
    "jax": _jax_backend,
}


def resolve_backend(name: str | None = None) -> BackendProtocol:
    """Return a :class:`BackendProtocol` instance for *name*.

    When *name* is ``None`` (the default), the policy from
    :func:`~adjusted_predictions._config.get_backend` is used.

    Args:
        name: ``"numpy"``, ``"jax"``, or ``None`` for policy default.

    Returns:
        A backend instance.

    Raises:
        ImportError: If ``"jax"`` is explicitly requested but JAX
            is not installed.
        ValueError: If *name* is not a recognised backend.
    """
    if name is None:
        name = get_backend()

    backend = _BACKEND_CACHE.get(name)
    if backend is not None:
        return backend

    factory = _FACTORIES.get(name)
    if factory is None:
        msg = f"Unknown backend {name!r}.  Choose one of {sorted(_FACTORIES)}."
        raise ValueError(msg)

    backend = factory()
    if not backend.is_available:
        msg = (
            f"Backend {name!r} was explicitly requested but its dependencies "
            "are not installed.  Install JAX (`pip install adjusted-predictions[jax]`) "
            "or use set_backend('numpy')."
        )
        raise ImportError(msg)

    _BACKEND_CACHE[name] = backend
    return backend
