"""adjusted_predictions — Adjusted predictions and marginal means for statsmodels.

Computes model predictions at representative values of one to four
focal predictors, holding the remaining predictors at typical values
or averaging over them, with delta-method, Jacobian, simulation or
posterior intervals.  Supports linear, generalised linear, discrete,
zero-inflated, ordinal, multinomial, Cox, linear mixed and Bayesian
mixed models through an open adapter registry, with optional JAX
autodiff for non-linear prediction functions.

Public API:
    .. autosummary::
        predict_response
        marginal_means
        build_reference_grid
        prediction_vcov
        PredictionResult
        ReferenceGrid
        ModelAdapter
        LinearAdapter
        GLMAdapter
        DiscreteAdapter
        ZeroInflatedAdapter
        HurdleAdapter
        OrdinalAdapter
        MultinomialAdapter
        CoxAdapter
        MixedLMAdapter
        BayesMixedGLMAdapter
        register_adapter
        resolve_adapter
        PredictionEngine
        PredictionContext
        get_backend
        set_backend
        get_option
        set_option
        reset_options
        AdjustedPredictionsError
        UnsupportedModelError
        InvalidTermsError
        PredictionFailureError
        SingularCovarianceError
"""

from ._config import get_backend, get_option, reset_options, set_backend, set_option
from ._context import PredictionContext
from ._results import PredictionResult
from .adapters import (
    CoxAdapter,
    DiscreteAdapter,
    GLMAdapter,
    HurdleAdapter,
    LinearAdapter,
    ModelAdapter,
    MultinomialAdapter,
    OrdinalAdapter,
    ZeroInflatedAdapter,
    register_adapter,
    resolve_adapter,
)
from .adapters_mixed import BayesMixedGLMAdapter, MixedLMAdapter
from .core import build_reference_grid, marginal_means, prediction_vcov, predict_response
from .engine import PredictionEngine
from .exceptions import (
    AdjustedPredictionsError,
    InvalidTermsError,
    PredictionFailureError,
    SingularCovarianceError,
    UnsupportedModelError,
)
from .grid import ReferenceGrid

__all__ = [
    "predict_response",
    "marginal_means",
    "build_reference_grid",
    "prediction_vcov",
    "PredictionResult",
    "ReferenceGrid",
    "ModelAdapter",
    "LinearAdapter",
    "GLMAdapter",
    "DiscreteAdapter",
    "ZeroInflatedAdapter",
    "HurdleAdapter",
    "OrdinalAdapter",
    "MultinomialAdapter",
    "CoxAdapter",
    "MixedLMAdapter",
    "BayesMixedGLMAdapter",
    "register_adapter",
    "resolve_adapter",
    "PredictionEngine",
    "PredictionContext",
    "get_backend",
    "set_backend",
    "get_option",
    "set_option",
    "reset_options",
    "AdjustedPredictionsError",
    "UnsupportedModelError",
    "InvalidTermsError",
    "PredictionFailureError",
    "SingularCovarianceError",
]

__version__ = "0.1.0"
