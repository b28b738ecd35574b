"""Inverse link functions written against an array namespace.

statsmodels link objects (``sm.families.links.*``) implement their
inverse with NumPy only.  The prediction engine needs the same
transforms under two array namespaces — NumPy for point predictions
and finite differences, ``jax.numpy`` for autodiff Jacobians — so
the common links are re-expressed here as ``inverse(eta, xp)``.

:func:`link_from_statsmodels` maps a statsmodels link instance to a
:class:`Link`.  Links without a namespace-generic rendition fall back
to the statsmodels implementation with ``autodiff=False``; the engine
then differentiates them numerically regardless of the active backend.

Each link also records the *support* of the response-scale mean, used
to clip response-scale confidence bounds (e.g. probabilities stay in
``[0, 1]``).
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from types import ModuleType
from typing import Any

import numpy as np
import scipy.special

_UNIT = (0.0, 1.0)
_POSITIVE = (0.0, np.inf)
_REAL = (-np.inf, np.inf)


def special_functions(xp: ModuleType) -> ModuleType:
    """Return the ``special`` module matching array namespace *xp*."""
    if xp is np:
        return scipy.special
    import jax.scipy.special as jsp_special

    return jsp_special


@dataclass(frozen=True)
class Link:
    """Inverse link ``g⁻¹`` with its response-scale support.

    Attributes:
        name: Short identifier (``"identity"``, ``"log"``, ...).
        inverse_fn: ``inverse_fn(eta, xp)`` mapping the linear
            predictor to the response scale.
        support: ``(lower, upper)`` bounds of the response mean.
        autodiff: Whether *inverse_fn* only uses *xp* operations and
            can therefore be traced by JAX.
    """

    name: str
    inverse_fn: Callable[[Any, ModuleType], Any]
    support: tuple[float, float] = _REAL
    autodiff: bool = True

    def inverse(self, eta: Any, xp: ModuleType = np) -> Any:
        return self.inverse_fn(eta, xp)


def _identity(eta, xp):  # noqa: ARG001
    return eta


def _exp(eta, xp):
    return xp.exp(eta)


def _logistic(eta, xp):
    return special_functions(xp).expit(eta)


def _normal_cdf(eta, xp):
    return special_functions(xp).ndtr(eta)


def _cloglog_inverse(eta, xp):
    return 1.0 - xp.exp(-xp.exp(eta))


def _loglog_inverse(eta, xp):
    return xp.exp(-xp.exp(-eta))


def _cauchy_inverse(eta, xp):
    return 0.5 + xp.arctan(eta) / np.pi


def _reciprocal(eta, xp):  # noqa: ARG001
    return 1.0 / eta


def _inverse_squared_inverse(eta, xp):
    return 1.0 / xp.sqrt(eta)


def _square(eta, xp):  # noqa: ARG001
    return eta**2


IDENTITY = Link("identity", _identity, _REAL)
LOG = Link("log", _exp, _POSITIVE)
LOGIT = Link("logit", _logistic, _UNIT)
PROBIT = Link("probit", _normal_cdf, _UNIT)
CLOGLOG = Link("cloglog", _cloglog_inverse, _UNIT)
LOGLOG = Link("loglog", _loglog_inverse, _UNIT)
CAUCHY = Link("cauchy", _cauchy_inverse, _UNIT)
INVERSE_POWER = Link("inverse_power", _reciprocal, _REAL)
INVERSE_SQUARED = Link("inverse_squared", _inverse_squared_inverse, _POSITIVE)
SQRT = Link("sqrt", _square, _POSITIVE)

_BY_CLASS_NAME: dict[str, Link] = {
    "identity": IDENTITY,
    "log": LOG,
    "logit": LOGIT,
    "probit": PROBIT,
    "cloglog": CLOGLOG,
    "loglog": LOGLOG,
    "cauchy": CAUCHY,
    "inversepower": INVERSE_POWER,
    "inverse_power": INVERSE_POWER,
    "inversesquared": INVERSE_SQUARED,
    "inverse_squared": INVERSE_SQUARED,
    "sqrt": SQRT,
}


def link_by_name(name: str) -> Link:
    """Look up a built-in link by name (``"logit"``, ``"log"``, ...)."""
    key = name.strip().lower()
    if key not in _BY_CLASS_NAME:
        msg = f"Unknown link {name!r}. Available links: {sorted(set(_BY_CLASS_NAME))}"
        raise ValueError(msg)
    return _BY_CLASS_NAME[key]


def link_from_statsmodels(sm_link: Any) -> Link:
    """Translate a statsmodels link instance into a :class:`Link`.

    Identity, square-root and inverse links are subclasses of
    statsmodels' ``Power`` link, so the class name is checked before
    falling back to the generic power rule.
    """
    key = type(sm_link).__name__.lower()
    if key in _BY_CLASS_NAME:
        return _BY_CLASS_NAME[key]

    power = getattr(sm_link, "power", None)
    if key == "power" and power is not None and power != 0:
        exponent = 1.0 / float(power)
        return Link(f"power({power})", lambda eta, xp: eta**exponent, _REAL)

    return Link(
        key,
        lambda eta, xp: sm_link.inverse(np.asarray(eta)),  # noqa: ARG005
        _REAL,
        autodiff=False,
    )
