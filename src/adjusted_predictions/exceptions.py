"""Exception hierarchy for adjusted predictions.

Every error raised deliberately by the package derives from
:class:`AdjustedPredictionsError`.  Each concrete error also inherits
from the builtin that callers would naturally catch for the same
failure (``TypeError`` for an unsupported model object, ``ValueError``
for bad terms, ``LinAlgError`` for a broken covariance matrix), so
existing ``except ValueError`` handlers keep working.

None of these errors is recovered internally: they propagate to the
caller as soon as the failing condition is detected.
"""

from __future__ import annotations

import numpy as np


class AdjustedPredictionsError(Exception):
    """Base class for all package errors."""


class UnsupportedModelError(AdjustedPredictionsError, TypeError):
    """No registered adapter handles the given model object."""


class InvalidTermsError(AdjustedPredictionsError, ValueError):
    """The terms specification is malformed or names unknown predictors."""


class PredictionFailureError(AdjustedPredictionsError, RuntimeError):
    """Building the design matrix or calling the model's predict failed."""


class SingularCovarianceError(AdjustedPredictionsError, np.linalg.LinAlgError):
    """The parameter covariance cannot be used to propagate uncertainty.

    Raised when the covariance matrix contains non-finite entries, is
    not positive semi-definite, or the projection ``x' V x`` yields a
    negative or non-finite variance.
    """
