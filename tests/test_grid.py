"""Tests for representative values and reference-grid construction."""

import numpy as np
import pandas as pd
import pytest

from adjusted_predictions._design import ModelTerms
from adjusted_predictions.exceptions import InvalidTermsError
from adjusted_predictions.grid import (
    make_reference_grid,
    representative_values,
    typical_value,
)
from adjusted_predictions.terms import TermSpec, parse_term, parse_terms

# ------------------------------------------------------------------ #
# Fixtures
# ------------------------------------------------------------------ #


@pytest.fixture()
def frame():
    rng = np.random.default_rng(7)
    n = 120
    g = np.array(["a"] * 30 + ["b"] * 60 + ["c"] * 30)
    return pd.DataFrame(
        {
            "x": np.linspace(0.0, 10.0, n),
            "z": rng.standard_normal(n),
            "g": g,
            "h": np.where(np.arange(n) % 2 == 0, "u", "v"),
        }
    )


@pytest.fixture()
def model_terms(frame):
    return ModelTerms(
        response="y",
        predictors=("x", "z", "g", "h"),
        categorical={"g": ("a", "b", "c"), "h": ("u", "v")},
        frame=frame,
    )


# ------------------------------------------------------------------ #
# representative_values
# ------------------------------------------------------------------ #


class TestRepresentativeValues:
    def test_dense_continuous_uses_linspace(self, frame):
        values = representative_values(frame["x"], TermSpec("x"), n_values=25)
        assert len(values) == 25
        assert values[0] == pytest.approx(0.0)
        assert values[-1] == pytest.approx(10.0)
        assert np.all(np.diff(values) > 0)

    def test_few_distinct_values_used_as_is(self):
        series = pd.Series([3.0, 1.0, 2.0, 1.0, 3.0])
        assert representative_values(series, TermSpec("x"), n_values=25) == (1.0, 2.0, 3.0)

    def test_explicit_values_sorted_unique(self, frame):
        values = representative_values(frame["x"], parse_term("x [5, 1, 5, 2]"))
        assert values == (1.0, 2.0, 5.0)

    def test_explicit_values_must_be_numeric(self, frame):
        with pytest.raises(InvalidTermsError, match="numeric"):
            representative_values(frame["x"], parse_term("x [low, high]"))

    def test_minmax(self, frame):
        assert representative_values(frame["x"], parse_term("x [minmax]")) == (0.0, 10.0)

    def test_meansd(self, frame):
        values = representative_values(frame["z"], parse_term("z [meansd]"))
        mean, sd = frame["z"].mean(), frame["z"].std(ddof=1)
        np.testing.assert_allclose(values, [mean - sd, mean, mean + sd])

    def test_quart(self, frame):
        values = representative_values(frame["x"], parse_term("x [quart]"))
        np.testing.assert_allclose(values, [0.0, 2.5, 5.0, 7.5, 10.0])

    def test_quart2(self, frame):
        values = representative_values(frame["x"], parse_term("x [quart2]"))
        np.testing.assert_allclose(values, [2.5, 5.0, 7.5])

    def test_n_values(self, frame):
        values = representative_values(frame["x"], parse_term("x [n=5]"))
        np.testing.assert_allclose(values, [0.0, 2.5, 5.0, 7.5, 10.0])

    def test_sequence(self, frame):
        values = representative_values(frame["x"], parse_term("x [0:10 by=2.5]"))
        np.testing.assert_allclose(values, [0.0, 2.5, 5.0, 7.5, 10.0])

    def test_categorical_all_levels(self, frame):
        values = representative_values(frame["g"], TermSpec("g"), levels=("a", "b", "c"))
        assert values == ("a", "b", "c")

    def test_categorical_subset_in_given_order(self, frame):
        values = representative_values(frame["g"], parse_term("g [c, a]"), levels=("a", "b", "c"))
        assert values == ("c", "a")

    def test_categorical_unknown_level_rejected(self, frame):
        with pytest.raises(InvalidTermsError, match="not an observed level"):
            representative_values(frame["g"], parse_term("g [d]"), levels=("a", "b", "c"))

    def test_categorical_shortcut_rejected(self, frame):
        with pytest.raises(InvalidTermsError, match="categorical"):
            representative_values(frame["g"], parse_term("g [meansd]"), levels=("a", "b", "c"))

    def test_typical_value(self, frame):
        assert typical_value(frame["z"], "mean") == pytest.approx(frame["z"].mean())
        assert typical_value(frame["z"], "median") == pytest.approx(frame["z"].median())


# ------------------------------------------------------------------ #
# make_reference_grid
# ------------------------------------------------------------------ #


class TestMakeReferenceGrid:
    def test_cartesian_product_first_term_fastest(self, model_terms):
        grid = make_reference_grid(model_terms, parse_terms(["x [1, 2]", "g"]))
        assert grid.n_points == 6
        assert grid.data["x"].tolist() == [1.0, 2.0] * 3
        assert grid.data["g"].tolist() == ["a", "a", "b", "b", "c", "c"]

    def test_mean_reference_defaults(self, model_terms, frame):
        grid = make_reference_grid(model_terms, parse_terms(["x [1]"]))
        assert grid.constant_values["z"] == pytest.approx(frame["z"].mean())
        assert grid.constant_values["g"] == "a"
        assert grid.constant_values["h"] == "u"
        assert grid.averaging is None
        assert grid.evaluation_rows is grid.data

    def test_median_typical(self, model_terms, frame):
        grid = make_reference_grid(model_terms, parse_terms(["x [1]"]), typical="median")
        assert grid.constant_values["z"] == pytest.approx(frame["z"].median())

    def test_mean_mode_uses_most_frequent_level(self, model_terms):
        grid = make_reference_grid(model_terms, parse_terms(["x [1]"]), margin="mean_mode")
        assert grid.constant_values["g"] == "b"

    def test_condition_overrides_margin(self, model_terms):
        grid = make_reference_grid(
            model_terms, parse_terms(["x [1]"]), condition={"z": 1.5, "g": "c"}
        )
        assert grid.constant_values["z"] == 1.5
        assert grid.data["g"].tolist() == ["c"]

    def test_marginal_means_expands_factor_levels(self, model_terms):
        grid = make_reference_grid(model_terms, parse_terms(["x [1, 2]"]), margin="marginal_means")
        assert grid.averaging == "link"
        # g (3 levels) x h (2 levels) combinations per grid point.
        assert len(grid.rows) == 2 * 6
        assert grid.row_index.tolist() == [0] * 6 + [1] * 6
        assert "g" not in grid.constant_values
        assert "z" in grid.constant_values

    def test_empirical_imposes_grid_on_every_row(self, model_terms, frame):
        grid = make_reference_grid(model_terms, parse_terms(["x [1, 2]"]), margin="empirical")
        assert grid.averaging == "response"
        assert len(grid.rows) == 2 * len(frame)
        assert set(grid.rows["x"].iloc[: len(frame)]) == {1.0}
        np.testing.assert_allclose(grid.rows["z"].iloc[: len(frame)], frame["z"])

    def test_unknown_term_rejected(self, model_terms):
        with pytest.raises(InvalidTermsError, match="not found"):
            make_reference_grid(model_terms, parse_terms(["w"]))

    def test_condition_on_focal_term_rejected(self, model_terms):
        with pytest.raises(InvalidTermsError, match="condition"):
            make_reference_grid(model_terms, parse_terms(["x"]), condition={"x": 1.0})

    def test_condition_unknown_predictor_rejected(self, model_terms):
        with pytest.raises(ValueError, match="unknown predictor"):
            make_reference_grid(model_terms, parse_terms(["x"]), condition={"w": 1.0})

    def test_unknown_margin_rejected(self, model_terms):
        with pytest.raises(ValueError, match="Unknown margin"):
            make_reference_grid(model_terms, parse_terms(["x"]), margin="average")

    def test_focal_values_recorded(self, model_terms):
        grid = make_reference_grid(model_terms, parse_terms(["x [n=3]", "h"]))
        assert grid.focal_values["x"] == (0.0, 5.0, 10.0)
        assert grid.focal_values["h"] == ("u", "v")
        assert grid.term_names == ["x", "h"]
