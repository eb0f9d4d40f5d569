"""Tests for lexical overlap matching."""

import pytest

from trial_matcher.matching.overlap import arrays_overlap


class TestExactOverlap:
    def test_shared_element(self):
        assert arrays_overlap(["asthma", "copd"], ["COPD "]) is True

    def test_no_shared_element(self):
        assert arrays_overlap(["asthma"], ["copd"]) is False

    def test_single_values_are_wrapped(self):
        assert arrays_overlap("Diabetes", ["diabetes"]) is True

    def test_values_are_stringified(self):
        assert arrays_overlap([1, 2], ["2"]) is True

    def test_exact_mode_ignores_substrings(self):
        assert arrays_overlap(["malignant tumors"], ["tumor"]) is False

    @pytest.mark.parametrize("a,b", [(None, [1, 2]), ([1, 2], None), (None, None)])
    def test_none_never_overlaps(self, a, b):
        assert arrays_overlap(a, b) is False
        assert arrays_overlap(a, b, True) is False


class TestFuzzyOverlap:
    def test_substring_either_direction(self):
        assert arrays_overlap(["malignant tumors"], ["tumor"], True) is True
        assert arrays_overlap(["cat"], ["the cat"], True) is True
        assert arrays_overlap(["the cat"], ["cat"], True) is True

    def test_shared_long_word(self):
        assert arrays_overlap(["type 2 diabetes"], ["diabetes insipidus"], True) is True

    def test_short_shared_word_is_not_enough(self):
        assert arrays_overlap(["the dog"], ["the cat"], True) is False

    def test_custom_predicate(self):
        same_first_letter = lambda x, y: str(x)[0] == str(y)[0]
        assert arrays_overlap(["apple"], ["avocado"], same_first_letter) is True
        assert arrays_overlap(["apple"], ["banana"], same_first_letter) is False
