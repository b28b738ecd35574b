"""Configuration for the adjusted_predictions package.

Two kinds of settings live here:

* The **compute backend** used for delta-method Jacobians of
  non-linear prediction functions (``"jax"`` autodiff or ``"numpy"``
  central finite differences).
* **Numeric defaults** used when a call does not pass an explicit
  value: the number of representative values for continuous focal
  terms, the number of simulation draws for simulation-based
  uncertainty, and the typical-value function for continuous
  non-focal predictors.

Resolution order (first match wins):
    1. Programmatic override via :func:`set_backend` / :func:`set_option`.
    2. Environment variables ``ADJUSTED_PREDICTIONS_BACKEND``,
       ``ADJUSTED_PREDICTIONS_N_VALUES``,
       ``ADJUSTED_PREDICTIONS_N_SIMS`` and
       ``ADJUSTED_PREDICTIONS_TYPICAL``.
    3. Built-in defaults (backend auto-detection: ``"jax"`` if JAX is
       importable, else ``"numpy"``).

Examples:
    Force finite-difference Jacobians from the shell::

        export ADJUSTED_PREDICTIONS_BACKEND=numpy

    Use a denser grid for continuous terms programmatically::

        import adjusted_predictions
        adjusted_predictions.set_option("n_values", 50)
"""

from __future__ import annotations

import os
from typing import Any

_VALID_BACKENDS = {"jax", "numpy", "auto"}

_VALID_TYPICAL = {"mean", "median"}

_ENV_PREFIX = "ADJUSTED_PREDICTIONS_"

_DEFAULTS: dict[str, Any] = {
    "n_values": 25,
    "n_sims": 1000,
    "typical": "mean",
}

# Sentinel indicating "no programmatic override has been set".
_backend_override: str | None = None

_option_overrides: dict[str, Any] = {}


def _jax_is_available() -> bool:
    """Return ``True`` if JAX can be imported."""
    try:
        # Side-effect import to test availability; value unused.
        import jax  # noqa: F401

        return True
    except ImportError:
        return False


def get_backend() -> str:
    """Return the active backend name (``"jax"`` or ``"numpy"``).

    Resolution order:
        1. Value set by :func:`set_backend` (unless ``"auto"``).
        2. ``ADJUSTED_PREDICTIONS_BACKEND`` environment variable.
        3. ``"jax"`` if importable, otherwise ``"numpy"``.

    Returns:
        ``"jax"`` or ``"numpy"``.
    """
    if _backend_override is not None and _backend_override != "auto":
        return _backend_override

    env = os.environ.get(f"{_ENV_PREFIX}BACKEND", "").strip().lower()
    if env in ("jax", "numpy"):
        return env

    return "jax" if _jax_is_available() else "numpy"


def set_backend(name: str) -> None:
    """Override the backend selection.

    Args:
        name: One of ``"jax"``, ``"numpy"``, or ``"auto"``
            (case-insensitive).  ``"auto"`` restores the default
            resolution order.

    Raises:
        ValueError: If *name* is not a recognised backend.
    """
    global _backend_override
    normalised = name.strip().lower()
    if normalised not in _VALID_BACKENDS:
        raise ValueError(
            f"Unknown backend '{name}'. Choose from: {sorted(_VALID_BACKENDS)}"
        )
    _backend_override = normalised


# ------------------------------------------------------------------ #
# Numeric defaults
# ------------------------------------------------------------------ #


def _validate_option(name: str, value: Any) -> Any:
    """Coerce and validate a single option value."""
    if name in ("n_values", "n_sims"):
        try:
            coerced = int(value)
        except (TypeError, ValueError):
            msg = f"Option {name!r} must be an integer, got {value!r}."
            raise ValueError(msg) from None
        minimum = 2 if name == "n_values" else 10
        if coerced < minimum:
            msg = f"Option {name!r} must be >= {minimum}, got {coerced}."
            raise ValueError(msg)
        return coerced
    if name == "typical":
        normalised = str(value).strip().lower()
        if normalised not in _VALID_TYPICAL:
            msg = (
                f"Unknown typical value function {value!r}. "
                f"Choose from: {sorted(_VALID_TYPICAL)}"
            )
            raise ValueError(msg)
        return normalised
    msg = f"Unknown option {name!r}. Available options: {sorted(_DEFAULTS)}"
    raise ValueError(msg)


def get_option(name: str) -> Any:
    """Return the active value of a numeric default.

    Args:
        name: ``"n_values"``, ``"n_sims"`` or ``"typical"``.

    Raises:
        ValueError: If *name* is unknown, or the environment variable
            holds an invalid value.
    """
    if name not in _DEFAULTS:
        msg = f"Unknown option {name!r}. Available options: {sorted(_DEFAULTS)}"
        raise ValueError(msg)
    if name in _option_overrides:
        return _option_overrides[name]
    env = os.environ.get(f"{_ENV_PREFIX}{name.upper()}", "").strip()
    if env:
        return _validate_option(name, env)
    return _DEFAULTS[name]


def set_option(name: str, value: Any) -> None:
    """Override a numeric default for the rest of the process.

    Raises:
        ValueError: If *name* is unknown or *value* is invalid.
    """
    _option_overrides[name] = _validate_option(name, value)


def reset_options() -> None:
    """Drop every programmatic override (options and backend)."""
    global _backend_override
    _backend_override = None
    _option_overrides.clear()
