"""Tests for model-frame access and design-matrix construction."""

from types import SimpleNamespace

import numpy as np
import pandas as pd
import patsy
import pytest
import statsmodels.formula.api as smf

from adjusted_predictions import UnsupportedModelError, predict_response
from adjusted_predictions._design import build_exog, describe_model, formula_design


def _make_factor_data(n=120, seed=11):
    rng = np.random.default_rng(seed)
    df = pd.DataFrame({"x": rng.uniform(0, 4, n), "g": rng.choice(["a", "b"], n)})
    df["y"] = 0.2 + 0.7 * df["x"] + (df["g"] == "b") * 1.5 + rng.standard_normal(n)
    return df


@pytest.fixture(scope="module")
def factor_fit():
    return smf.ols("y ~ x + C(g)", _make_factor_data()).fit()


@pytest.fixture(scope="module")
def patsy_info():
    return patsy.dmatrix("~ x", pd.DataFrame({"x": [1.0, 2.0, 3.0]})).design_info


class TestFormulaDesign:
    """The right-hand-side encoding is found under either attribute name."""

    def test_model_spec(self, patsy_info):
        assert formula_design(SimpleNamespace(model_spec=patsy_info)) is patsy_info

    def test_design_info(self, patsy_info):
        assert formula_design(SimpleNamespace(design_info=patsy_info)) is patsy_info

    def test_model_spec_preferred(self, patsy_info):
        other = patsy.dmatrix("~ x + I(x**2)", pd.DataFrame({"x": [1.0, 2.0]})).design_info
        data = SimpleNamespace(model_spec=patsy_info, design_info=other)
        assert formula_design(data) is patsy_info

    def test_array_model_has_none(self):
        assert formula_design(SimpleNamespace()) is None
        assert formula_design(None) is None

    def test_other_formula_engine_rejected(self):
        with pytest.raises(UnsupportedModelError, match="formula engine"):
            formula_design(SimpleNamespace(model_spec=object()))

    def test_fitted_formula_model(self, factor_fit):
        assert isinstance(formula_design(factor_fit.model.data), patsy.DesignInfo)


class TestDescribeModel:
    def test_raw_variables_not_dummy_columns(self, factor_fit):
        terms = describe_model(factor_fit.model)
        assert terms.predictors == ("x", "g")
        assert terms.categorical == {"g": ("a", "b")}
        assert terms.response == "y"

    def test_build_exog_replays_coding(self, factor_fit):
        rows = pd.DataFrame({"x": [1.0, 2.0], "g": np.array(["a", "b"], dtype=object)})
        X = build_exog(factor_fit.model, rows)
        np.testing.assert_allclose(X, [[1.0, 0.0, 1.0], [1.0, 1.0, 2.0]])


class TestFormulaPredictions:
    def test_factor_is_a_focal_term(self, factor_fit):
        result = predict_response(factor_fit, "g")
        assert list(result.table["x"]) == ["a", "b"]

    def test_non_focal_factor_at_reference_level(self, factor_fit):
        result = predict_response(factor_fit, "x [0]")
        assert result.constant_values == {"g": "a"}
        assert result.predicted[0] == pytest.approx(factor_fit.params["Intercept"])
