"""Tests for the model-family adapters and the adapter registry."""

import warnings
from types import SimpleNamespace

import numpy as np
import pandas as pd
import patsy
import pytest
import statsmodels.formula.api as smf
from statsmodels.discrete.count_model import ZeroInflatedPoisson
from statsmodels.discrete.truncated_model import HurdleCountModel
from statsmodels.duration.hazard_regression import PHReg
from statsmodels.miscmodels.ordinal_model import OrderedModel

from adjusted_predictions import (
    CoxAdapter,
    DiscreteAdapter,
    GLMAdapter,
    HurdleAdapter,
    InvalidTermsError,
    LinearAdapter,
    ModelAdapter,
    MultinomialAdapter,
    OrdinalAdapter,
    UnsupportedModelError,
    ZeroInflatedAdapter,
    predict_response,
    register_adapter,
    resolve_adapter,
)
from adjusted_predictions.adapters import _ADAPTERS, registered_adapters
from adjusted_predictions.adapters_mixed import BayesMixedGLMAdapter, MixedLMAdapter

# ------------------------------------------------------------------ #
# Fixtures
# ------------------------------------------------------------------ #


@pytest.fixture(scope="module")
def rng():
    return np.random.default_rng(2024)


@pytest.fixture(scope="module")
def zip_fit():
    rng = np.random.default_rng(11)
    n = 400
    x = rng.uniform(0, 3, n)
    counts = rng.poisson(np.exp(0.4 + 0.3 * x))
    y = np.where(rng.uniform(size=n) < 0.3, 0, counts)
    df = pd.DataFrame({"y": y, "x": x})
    return ZeroInflatedPoisson.from_formula("y ~ x", df).fit(
        method="bfgs", maxiter=2000, disp=False
    )


def _make_mined_counts(n=500, seed=19):
    rng = np.random.default_rng(seed)
    mined = rng.choice(["no", "yes"], n)
    counts = rng.poisson(np.where(mined == "yes", 0.8, 2.5))
    structural = rng.uniform(size=n) < np.where(mined == "yes", 0.6, 0.2)
    return pd.DataFrame({"count": np.where(structural, 0, counts), "mined": mined})


@pytest.fixture(scope="module")
def zip_factor_fit():
    df = _make_mined_counts()
    exog_infl = patsy.dmatrix("~ C(mined)", df, return_type="dataframe")
    return ZeroInflatedPoisson.from_formula("count ~ C(mined)", df, exog_infl=exog_infl).fit(
        method="bfgs", maxiter=2000, disp=False
    )


@pytest.fixture(scope="module")
def hurdle_fit():
    return HurdleCountModel.from_formula(
        "count ~ C(mined)", _make_mined_counts(), dist="poisson", zerodist="poisson"
    ).fit(maxiter=500, disp=False)


@pytest.fixture(scope="module")
def hurdle_negbin_fit():
    rng = np.random.default_rng(23)
    n = 600
    x = rng.uniform(0, 2, n)
    mu = np.exp(0.5 + 0.4 * x)
    counts = rng.negative_binomial(2.0, 2.0 / (2.0 + mu))
    y = np.where(rng.uniform(size=n) < 0.25, 0, counts)
    df = pd.DataFrame({"y": y, "x": x})
    return HurdleCountModel.from_formula("y ~ x", df, dist="negbin", zerodist="poisson").fit(
        maxiter=500, disp=False
    )


@pytest.fixture(scope="module")
def ordinal_fit():
    rng = np.random.default_rng(5)
    n = 300
    x = rng.normal(size=n)
    latent = 0.8 * x + rng.logistic(size=n)
    rating = pd.cut(latent, [-np.inf, -0.5, 0.7, np.inf], labels=["low", "mid", "high"])
    df = pd.DataFrame(
        {"rating": pd.Categorical(rating, categories=["low", "mid", "high"], ordered=True), "x": x}
    )
    return OrderedModel.from_formula("rating ~ x", df, distr="logit").fit(
        method="bfgs", disp=False
    )


@pytest.fixture(scope="module")
def mnlogit_fit():
    rng = np.random.default_rng(8)
    n = 450
    x = rng.normal(size=n)
    logits = np.column_stack([np.zeros(n), 0.5 + 0.8 * x, -0.3 - 0.6 * x])
    probs = np.exp(logits) / np.exp(logits).sum(axis=1, keepdims=True)
    choice = np.array([rng.choice(3, p=p) for p in probs])
    df = pd.DataFrame({"choice": choice, "x": x})
    return smf.mnlogit("choice ~ x", df).fit(disp=False)


@pytest.fixture(scope="module")
def cox_fit():
    rng = np.random.default_rng(3)
    n = 200
    x = rng.normal(size=n)
    time = rng.exponential(1.0 / np.exp(0.5 * x))
    status = (rng.uniform(size=n) < 0.8).astype(int)
    df = pd.DataFrame({"time": time, "status": status, "x": x})
    return PHReg.from_formula("time ~ x", df, status="status").fit()


# ------------------------------------------------------------------ #
# Protocol conformance and registry
# ------------------------------------------------------------------ #


ALL_ADAPTERS = [
    LinearAdapter,
    GLMAdapter,
    DiscreteAdapter,
    ZeroInflatedAdapter,
    HurdleAdapter,
    OrdinalAdapter,
    MultinomialAdapter,
    CoxAdapter,
    MixedLMAdapter,
    BayesMixedGLMAdapter,
]


class TestProtocol:
    @pytest.mark.parametrize("cls", ALL_ADAPTERS, ids=lambda c: c.__name__)
    def test_conforms(self, cls):
        adapter = cls()
        assert isinstance(adapter, ModelAdapter)
        assert adapter.supported_types[0] == "fe"

    def test_builtin_tags_registered(self):
        tags = set(registered_adapters())
        assert {
            "linear",
            "glm",
            "discrete",
            "zero_inflated",
            "hurdle",
            "ordinal",
            "multinomial",
            "cox",
            "mixed",
            "bayes",
        } <= tags


class TestRegistry:
    def test_resolves_by_model_class(self, zip_fit, hurdle_fit, ordinal_fit, mnlogit_fit, cox_fit):
        assert resolve_adapter(zip_fit).name == "zero_inflated"
        assert resolve_adapter(hurdle_fit).name == "hurdle"
        assert not DiscreteAdapter().matches(hurdle_fit)
        assert resolve_adapter(ordinal_fit).name == "ordinal"
        assert resolve_adapter(mnlogit_fit).name == "multinomial"
        assert resolve_adapter(cox_fit).name == "cox"

    def test_unfitted_object_rejected(self):
        with pytest.raises(UnsupportedModelError, match="fitted statsmodels"):
            resolve_adapter(object())

    def test_unknown_model_class_rejected(self):
        fake = SimpleNamespace(model=object(), params=np.zeros(2))
        with pytest.raises(UnsupportedModelError, match="Unsupported model class"):
            resolve_adapter(fake)

    def test_unsupported_is_type_error(self):
        with pytest.raises(TypeError):
            resolve_adapter(SimpleNamespace(model=object(), params=np.zeros(1)))

    def test_later_registration_takes_precedence(self, rng):
        class TaggedLinearAdapter(LinearAdapter):
            @property
            def name(self) -> str:
                return "tagged_linear"

        df = pd.DataFrame({"x": rng.normal(size=30)})
        df["y"] = df["x"] + rng.normal(size=30)
        fit = smf.ols("y ~ x", df).fit()
        register_adapter("tagged_linear", TaggedLinearAdapter)
        try:
            assert registered_adapters()[0] == "tagged_linear"
            assert resolve_adapter(fit).name == "tagged_linear"
        finally:
            _ADAPTERS.pop("tagged_linear")
        assert resolve_adapter(fit).name == "linear"

    def test_register_rejects_non_adapter(self):
        class NotAnAdapter:
            pass

        with pytest.raises(TypeError, match="ModelAdapter protocol"):
            register_adapter("broken", NotAnAdapter)
        assert "broken" not in registered_adapters()

    def test_adapter_warnings_recorded_and_reissued(self, rng):
        class WarningLinearAdapter(LinearAdapter):
            @property
            def name(self) -> str:
                return "warning_linear"

            def predict(self, results, design, request):
                warnings.warn("grid extends beyond the data", UserWarning, stacklevel=2)
                return super().predict(results, design, request)

        df = pd.DataFrame({"x": rng.normal(size=30)})
        df["y"] = df["x"] + rng.normal(size=30)
        fit = smf.ols("y ~ x", df).fit()
        register_adapter("warning_linear", WarningLinearAdapter)
        try:
            with pytest.warns(UserWarning, match="beyond the data"):
                result = predict_response(fit, "x [0, 1]")
        finally:
            _ADAPTERS.pop("warning_linear")
        assert result.context.warnings_captured == ["UserWarning: grid extends beyond the data"]

    def test_no_warnings_captured(self, rng):
        df = pd.DataFrame({"x": rng.normal(size=30)})
        df["y"] = df["x"] + rng.normal(size=30)
        result = predict_response(smf.ols("y ~ x", df).fit(), "x [0, 1]")
        assert result.context.warnings_captured == []


# ------------------------------------------------------------------ #
# Zero-inflated models
# ------------------------------------------------------------------ #


class TestZeroInflated:
    def test_unconditional_mean_below_count_mean(self, zip_fit):
        fe = predict_response(zip_fit, "x [0, 1, 2, 3]")
        fe_zi = predict_response(zip_fit, "x [0, 1, 2, 3]", type="fe.zi", seed=1)
        assert np.all(fe_zi.predicted < fe.predicted)
        assert fe_zi.method == "simulation"
        assert fe.method == "delta"

    def test_count_mean_matches_parameters(self, zip_fit):
        result = predict_response(zip_fit, "x [0, 2]")
        params = np.asarray(zip_fit.params)
        np.testing.assert_allclose(result.predicted, np.exp(params[1] + params[2] * np.array([0.0, 2.0])))

    def test_zero_probability_constant_without_inflation_design(self, zip_fit):
        result = predict_response(zip_fit, "x [0, 1, 2, 3]", type="zi.prob")
        assert np.ptp(result.predicted) == pytest.approx(0.0, abs=1e-12)
        assert np.all((result.predicted > 0) & (result.predicted < 1))

    def test_simulation_reproducible_with_seed(self, zip_fit):
        a = predict_response(zip_fit, "x [0, 3]", type="fe.zi", seed=42, n_sims=200)
        b = predict_response(zip_fit, "x [0, 3]", type="fe.zi", seed=42, n_sims=200)
        pd.testing.assert_frame_equal(a.table, b.table)
        assert a.context.draws.shape == (200, 2)

    def test_bounds_bracket_prediction(self, zip_fit):
        result = predict_response(zip_fit, "x [0, 1, 2, 3]", type="fe.zi", seed=0)
        assert np.all(result.conf_low <= result.predicted)
        assert np.all(result.predicted <= result.conf_high)

    def test_inflation_design_follows_factor(self, zip_factor_fit):
        params = np.asarray(zip_factor_fit.params)
        result = predict_response(zip_factor_fit, "mined", type="zi.prob")
        assert result.table["x"].tolist() == ["no", "yes"]
        expected = 1.0 / (1.0 + np.exp(-(params[0] + np.array([0.0, params[1]]))))
        np.testing.assert_allclose(result.predicted, expected, rtol=1e-10)

    def test_unconditional_mean_point_estimate(self, zip_factor_fit):
        params = np.asarray(zip_factor_fit.params)
        result = predict_response(zip_factor_fit, "mined", type="fe.zi", seed=123)
        pi = 1.0 / (1.0 + np.exp(-(params[0] + np.array([0.0, params[1]]))))
        mu = np.exp(params[2] + np.array([0.0, params[3]]))
        np.testing.assert_allclose(result.predicted, mu * (1.0 - pi), rtol=1e-10)

    def test_marginal_means_match_predictions_for_single_factor(self, zip_factor_fit):
        a = predict_response(zip_factor_fit, "mined")
        b = predict_response(zip_factor_fit, "mined", margin="marginal_means")
        np.testing.assert_allclose(a.predicted, b.predicted)

    def test_marginal_means_match_predictions_for_unconditional_mean(self, zip_factor_fit):
        a = predict_response(zip_factor_fit, "mined", type="fe.zi", seed=123)
        b = predict_response(zip_factor_fit, "mined", type="fe.zi", seed=123, margin="marginal_means")
        np.testing.assert_allclose(a.predicted, b.predicted, atol=1e-3)

    def test_invalid_type(self, zip_fit):
        with pytest.raises(ValueError, match="not available"):
            predict_response(zip_fit, "x", type="surv")


# ------------------------------------------------------------------ #
# Hurdle models
# ------------------------------------------------------------------ #


def _mined_exog():
    return np.array([[1.0, 0.0], [1.0, 1.0]])


class TestHurdle:
    def test_count_mean_matches_parameters(self, hurdle_fit):
        params = np.asarray(hurdle_fit.params)
        result = predict_response(hurdle_fit, "mined")
        assert result.adapter == "hurdle"
        assert result.method == "delta"
        assert result.table["x"].tolist() == ["no", "yes"]
        np.testing.assert_allclose(result.predicted, np.exp(params[2] + np.array([0.0, params[3]])))

    def test_response_mean_matches_statsmodels(self, hurdle_fit):
        result = predict_response(hurdle_fit, "mined", type="fe.zi", seed=123)
        expected = hurdle_fit.model.predict(np.asarray(hurdle_fit.params), exog=_mined_exog(), which="mean")
        np.testing.assert_allclose(result.predicted, expected, rtol=1e-8)
        assert result.method == "simulation"

    def test_zero_probability_matches_statsmodels(self, hurdle_fit):
        result = predict_response(hurdle_fit, "mined", type="zi.prob")
        expected = hurdle_fit.model.predict(
            np.asarray(hurdle_fit.params), exog=_mined_exog(), which="prob-zero"
        )
        np.testing.assert_allclose(result.predicted, expected, rtol=1e-8)
        assert np.all(result.conf_low <= result.predicted)
        assert np.all(result.predicted <= result.conf_high)
        assert np.all((result.conf_low >= 0.0) & (result.conf_high <= 1.0))

    def test_response_mean_below_count_mean_when_mined(self, hurdle_fit):
        fe = predict_response(hurdle_fit, "mined")
        fe_zi = predict_response(hurdle_fit, "mined", type="fe.zi", seed=1)
        assert fe_zi.predicted[1] < fe.predicted[1]

    def test_simulation_interval(self, hurdle_fit):
        result = predict_response(hurdle_fit, "mined", type="fe.zi", seed=7, n_sims=400)
        assert result.context.draws.shape == (400, 2)
        assert np.all(result.conf_low <= result.predicted)
        assert np.all(result.predicted <= result.conf_high)
        assert np.all(result.table["std.error"] > 0)

    @pytest.mark.parametrize("type_", ["fe", "fe.zi"])
    def test_marginal_means_match_predictions(self, hurdle_fit, type_):
        a = predict_response(hurdle_fit, "mined", type=type_, seed=123)
        b = predict_response(hurdle_fit, "mined", type=type_, seed=123, margin="marginal_means")
        np.testing.assert_allclose(a.predicted, b.predicted, atol=1e-3)

    def test_negative_binomial_count_part(self, hurdle_negbin_fit):
        params = np.asarray(hurdle_negbin_fit.params)
        assert params.shape == (5,)
        x = np.array([0.0, 1.0, 2.0])
        result = predict_response(hurdle_negbin_fit, "x [0, 1, 2]", type="fe.zi", seed=3)
        mu_zero = np.exp(params[0] + params[1] * x)
        mu_count = np.exp(params[2] + params[3] * x)
        alpha = params[4]
        positive = 1.0 - np.exp(-mu_zero)
        nonzero_count = 1.0 - (1.0 + alpha * mu_count) ** (-1.0 / alpha)
        np.testing.assert_allclose(result.predicted, positive * mu_count / nonzero_count, rtol=1e-8)

    def test_negative_binomial_fe_drops_dispersion(self, hurdle_negbin_fit):
        params = np.asarray(hurdle_negbin_fit.params)
        result = predict_response(hurdle_negbin_fit, "x [0, 2]")
        np.testing.assert_allclose(result.predicted, np.exp(params[2] + params[3] * np.array([0.0, 2.0])))

    def test_invalid_type(self, hurdle_fit):
        with pytest.raises(ValueError, match="not available"):
            predict_response(hurdle_fit, "mined", type="re")


# ------------------------------------------------------------------ #
# Ordinal and multinomial models
# ------------------------------------------------------------------ #


class TestOrdinal:
    def test_probabilities_sum_to_one(self, ordinal_fit):
        result = predict_response(ordinal_fit, "x [-1, 0, 1]")
        assert list(result.table["response.level"].cat.categories) == ["low", "mid", "high"]
        totals = result.table.groupby("x")["predicted"].sum()
        np.testing.assert_allclose(totals, 1.0)

    def test_matches_model_predict(self, ordinal_fit):
        x = np.array([-1.0, 0.0, 1.0])
        result = predict_response(ordinal_fit, "x [-1, 0, 1]")
        expected = ordinal_fit.model.predict(ordinal_fit.params, exog=x[:, None])
        np.testing.assert_allclose(result.predicted.reshape(3, 3).T, expected, rtol=1e-8)

    def test_jacobian_path(self, ordinal_fit):
        result = predict_response(ordinal_fit, "x [0]", backend="numpy")
        assert result.method == "jacobian"
        assert np.all(result.table["std.error"] > 0)
        assert np.all(result.conf_low >= 0.0)
        assert np.all(result.conf_high <= 1.0)


class TestMultinomial:
    def test_probabilities_sum_to_one(self, mnlogit_fit):
        result = predict_response(mnlogit_fit, "x [-1, 0, 1]")
        totals = result.table.groupby("x")["predicted"].sum()
        np.testing.assert_allclose(totals, 1.0)
        assert result.table["response.level"].nunique() == 3

    def test_matches_fit_predict(self, mnlogit_fit):
        x = np.array([-1.0, 0.0, 1.0])
        result = predict_response(mnlogit_fit, "x [-1, 0, 1]")
        expected = np.asarray(mnlogit_fit.predict(pd.DataFrame({"x": x})))
        np.testing.assert_allclose(result.predicted.reshape(3, 3).T, expected, rtol=1e-8)

    def test_bounds_in_unit_interval(self, mnlogit_fit):
        result = predict_response(mnlogit_fit, "x", backend="numpy")
        assert np.all(result.conf_low >= 0.0)
        assert np.all(result.conf_high <= 1.0)
        assert np.all(result.conf_low <= result.predicted)


# ------------------------------------------------------------------ #
# Cox models
# ------------------------------------------------------------------ #


class TestCox:
    def test_hazard_ratio_relative_to_zero(self, cox_fit):
        result = predict_response(cox_fit, "x [0, 1]")
        assert result.predicted[0] == pytest.approx(1.0)
        assert result.predicted[1] == pytest.approx(np.exp(np.asarray(cox_fit.params)[0]))

    def test_survival_non_increasing(self, cox_fit):
        result = predict_response(cox_fit, ["time", "x [0, 1]"], type="surv")
        for _, block in result.table.groupby("group", observed=True):
            surv = block["predicted"].to_numpy()
            assert np.all(np.diff(surv) <= 1e-12)
            assert np.all((surv >= 0.0) & (surv <= 1.0))

    def test_cumulative_hazard_is_minus_log_survival(self, cox_fit):
        surv = predict_response(cox_fit, ["time", "x [0, 1]"], type="surv")
        cumhaz = predict_response(cox_fit, ["time", "x [0, 1]"], type="cumhaz")
        np.testing.assert_allclose(cumhaz.predicted, -np.log(surv.predicted), atol=1e-10)

    def test_survival_requires_time_term(self, cox_fit):
        with pytest.raises(InvalidTermsError, match="requires the time variable"):
            predict_response(cox_fit, "x", type="surv")

    def test_time_term_rejected_for_hazard_ratio(self, cox_fit):
        with pytest.raises(InvalidTermsError, match="can only be a focal term"):
            predict_response(cox_fit, ["time", "x"])
