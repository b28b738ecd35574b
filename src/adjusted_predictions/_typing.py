"""Shared type aliases for the adjusted_predictions package."""

from collections.abc import Mapping, Sequence

import numpy as np
import pandas as pd

# Array-like inputs accepted for explicit term values.
ArrayLike = np.ndarray | pd.Series | Sequence

# A single term: "x", "x [1, 2, 3]", "x [meansd]".
TermLike = str

# Terms accepted by the public API.
TermsLike = TermLike | Sequence[TermLike] | Mapping[str, ArrayLike | str | None]
