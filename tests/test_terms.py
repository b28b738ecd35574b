"""Tests for focal-term parsing."""

import pytest

from adjusted_predictions.exceptions import InvalidTermsError
from adjusted_predictions.terms import MAX_TERMS, TermSpec, parse_term, parse_terms

# ------------------------------------------------------------------ #
# Single terms
# ------------------------------------------------------------------ #


class TestParseTerm:
    def test_bare_name_is_automatic(self):
        spec = parse_term("age")
        assert spec == TermSpec(name="age")
        assert spec.is_automatic

    def test_strips_whitespace(self):
        assert parse_term("  age  ").name == "age"

    def test_numeric_literals(self):
        spec = parse_term("x [1, 2.5, 4]")
        assert spec.values == (1.0, 2.5, 4.0)
        assert not spec.is_automatic

    def test_string_literals(self):
        spec = parse_term("group [a, 'b']")
        assert spec.values == ("a", "b")

    def test_no_space_before_bracket(self):
        assert parse_term("x[1,2]").values == (1.0, 2.0)

    @pytest.mark.parametrize("shortcut", ["meansd", "minmax", "quart", "quart2", "zeromax", "all"])
    def test_shortcuts(self, shortcut):
        spec = parse_term(f"x [{shortcut}]")
        assert spec.shortcut == shortcut
        assert spec.values is None

    def test_shortcut_case_insensitive(self):
        assert parse_term("x [MeanSD]").shortcut == "meansd"

    def test_n_values(self):
        assert parse_term("x [n=7]").n_values == 7

    def test_n_values_needs_two(self):
        with pytest.raises(InvalidTermsError, match="at least 2"):
            parse_term("x [n=1]")

    def test_range_default_step(self):
        assert parse_term("x [0:3]").sequence == (0.0, 3.0, 1.0)

    def test_range_with_step(self):
        assert parse_term("x [0:10 by=2.5]").sequence == (0.0, 10.0, 2.5)

    def test_decreasing_range_rejected(self):
        with pytest.raises(InvalidTermsError, match="increasing"):
            parse_term("x [5:1]")

    def test_empty_brackets_rejected(self):
        with pytest.raises(InvalidTermsError, match="Empty"):
            parse_term("x []")

    def test_non_string_rejected(self):
        with pytest.raises(InvalidTermsError, match="strings"):
            parse_term(3)


# ------------------------------------------------------------------ #
# Term lists
# ------------------------------------------------------------------ #


class TestParseTerms:
    def test_single_string(self):
        assert [s.name for s in parse_terms("x")] == ["x"]

    def test_list_preserves_order(self):
        specs = parse_terms(["x", "g [a, b]", "z [meansd]"])
        assert [s.name for s in specs] == ["x", "g", "z"]

    def test_mapping(self):
        specs = parse_terms({"x": [1, 2], "g": None, "z": "minmax"})
        assert specs[0].values == (1, 2)
        assert specs[1].is_automatic
        assert specs[2].shortcut == "minmax"

    def test_mapping_empty_values_rejected(self):
        with pytest.raises(InvalidTermsError, match="Empty"):
            parse_terms({"x": []})

    def test_empty_rejected(self):
        with pytest.raises(InvalidTermsError, match="At least one"):
            parse_terms([])

    def test_more_than_four_rejected(self):
        with pytest.raises(InvalidTermsError, match=f"At most {MAX_TERMS}"):
            parse_terms(["a", "b", "c", "d", "e"])

    def test_four_accepted(self):
        assert len(parse_terms(["a", "b", "c", "d"])) == 4

    def test_duplicates_rejected(self):
        with pytest.raises(InvalidTermsError, match="distinct"):
            parse_terms(["x", "x [1, 2]"])

    def test_invalid_container_rejected(self):
        with pytest.raises(InvalidTermsError):
            parse_terms(42)

    def test_error_is_value_error(self):
        with pytest.raises(ValueError):
            parse_terms([])
