"""
Fragfolio Backend — Similarity Scorer and Rule Table Tests
============================================================

What:  Pure-function tests for string similarity and the static rule tables.
Why:   These numbers feed every confidence the API returns; a drift in a
       tier constant silently reorders suggestions.
"""

import pytest

from fragfolio.services.normalization_rules import (
    apply_rules,
    categorize_note,
    normalize_brand,
    normalize_concentration,
    normalize_fragrance_name,
    normalize_intensity,
    normalize_note_name,
    sanitize_input,
)
from fragfolio.services.similarity import jaccard, levenshtein_similarity, match_score


class TestLevenshteinSimilarity:

    def test_identical_strings_ignore_case(self):
        assert levenshtein_similarity("Chanel", "chanel") == 1.0

    def test_empty_side_scores_zero(self):
        assert levenshtein_similarity("", "Dior") == 0.0
        assert levenshtein_similarity("Dior", None) == 0.0

    def test_one_edit_over_length(self):
        """'dior' → 'dion' is one substitution over four characters."""
        assert levenshtein_similarity("dior", "dion") == pytest.approx(0.75)


class TestMatchScore:

    def test_exact(self):
        assert match_score("Aventus", "Aventus") == 1.0

    def test_case_insensitive(self):
        assert match_score("aventus", "AVENTUS") == 0.95

    def test_substring(self):
        assert match_score("Tom", "Tom Ford") == 0.85

    def test_word_overlap(self):
        """One shared word out of two on the longer side: 0.5 + 0.3 * 0.5."""
        assert match_score("black orchid", "black opium") == pytest.approx(0.65)

    def test_falls_back_to_weighted_levenshtein(self):
        assert match_score("dior", "dion") == pytest.approx(0.6 * 0.75)

    def test_empty_input(self):
        assert match_score("", "Dior") == 0.0


class TestJaccard:

    def test_overlap(self):
        assert jaccard(["rose", "musk"], ["rose", "amber"]) == pytest.approx(1 / 3)

    def test_both_empty(self):
        assert jaccard([], []) == 0.0


class TestBrandAndFragranceRules:

    def test_brand_alias(self):
        assert normalize_brand("シャネル") == "CHANEL"
        assert normalize_brand("YSL") == "Yves Saint Laurent"

    def test_padded_alias_is_mapped(self):
        assert normalize_brand(" chanel ") == "CHANEL"
        assert normalize_brand("シャネル\n") == "CHANEL"

    def test_unknown_brand_is_stripped(self):
        assert normalize_brand("  Creed ") == "Creed"

    def test_fragrance_number_and_marks(self):
        assert normalize_fragrance_name(" No 5 (TM) ") == "No.5 ™"
        assert normalize_fragrance_name("Coco(R)") == "Coco®"

    def test_concentration(self):
        assert normalize_concentration("Eau de Parfum") == "EDP"
        assert normalize_concentration("Unknown") == "Unknown"

    def test_apply_rules_only_touches_present_strings(self):
        data = {
            "normalized_brand": "dior",
            "normalized_fragrance_name": "No5",
            "concentration_type": "edt",
            "final_confidence_score": 0.9,
        }
        apply_rules(data)
        assert data == {
            "normalized_brand": "Dior",
            "normalized_fragrance_name": "No.5",
            "concentration_type": "EDT",
            "final_confidence_score": 0.9,
        }


class TestNoteRules:

    def test_note_name_alias(self):
        assert normalize_note_name(" Bergamotte ") == "bergamot"
        assert normalize_note_name("Iris") == "iris"

    def test_categorize_by_list_and_by_category_name(self):
        assert categorize_note("sandalwood") == "woody"
        assert categorize_note("citrus accord") == "citrus"
        assert categorize_note("iris") == "other"

    def test_intensity_aliases(self):
        assert normalize_intensity("Strong") == "strong"
        assert normalize_intensity("powerful") == "very_strong"
        assert normalize_intensity(None) == "moderate"


class TestSanitizeInput:

    def test_strips_tags_and_collapses_whitespace(self):
        assert sanitize_input("  <b>Tom</b>\n  Ford ") == "Tom Ford"
