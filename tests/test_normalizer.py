"""Tests for transcript normalization."""

import pytest

from voicelist.core.transcript_processor.normalizer import (
    TextNormalizer,
    normalize_final,
    normalize_interim,
)


class TestNormalizeFinal:
    def test_list_entry_cleanup(self):
        """Whitespace collapsed, comma spacing fixed, terminal period untouched."""
        assert normalize_final(" cá   hộp ,  rau  muống .") == "Cá hộp, rau muống ."

    def test_empty_text(self):
        assert normalize_final("") == ""
        assert normalize_final("   ") == ""

    def test_punctuation_spacing(self):
        assert normalize_final("trứng ; sữa : bánh") == "Trứng; sữa: bánh"

    def test_units(self):
        assert normalize_final("hai ki lô gam thịt bò") == "Hai kg thịt bò"
        assert normalize_final("Ki Lô gạo") == "Kg gạo"

    def test_number_words_inside_phrase(self):
        assert normalize_final("mua hai quả táo và ba bó rau") == "Mua 2 quả táo và 3 bó rau"

    def test_adjacent_number_words_all_replaced(self):
        assert normalize_final("mua một một cái") == "Mua 1 1 cái"

    def test_leading_number_word_kept(self):
        assert normalize_final("một hộp sữa") == "Một hộp sữa"

    def test_terminal_punctuation_kept(self):
        assert normalize_final("rau muống !") == "Rau muống !"
        assert normalize_final("rau muống?") == "Rau muống?"

    @pytest.mark.parametrize(
        "text",
        [
            " cá   hộp ,  rau  muống .",
            "mua một một một cái",
            "  hai  ki lô  gam , ba   quả ",
            "năm năm năm",
            "",
        ],
    )
    def test_idempotent(self, text):
        once = normalize_final(text)
        assert normalize_final(once) == once


class TestNormalizeInterim:
    def test_only_whitespace_collapsed(self):
        assert normalize_interim("  mua   hai ki lô ,") == "mua hai ki lô ,"

    def test_empty(self):
        assert normalize_interim("") == ""


class TestTextNormalizer:
    def test_custom_table(self):
        normalizer = TextNormalizer([("cô ca", "Coca-Cola")])
        assert normalizer.normalize("hai chai cô ca ,") == "Hai chai Coca-Cola ,"

    def test_with_vocabulary_extends_defaults(self):
        normalizer = TextNormalizer.with_vocabulary([["pép si", "Pepsi"]])
        assert normalizer.normalize("hai lon pép si , một gói mì") == "Hai lon Pepsi, 1 gói mì"

    def test_empty_originals_dropped(self):
        normalizer = TextNormalizer([("", "x"), ("rau", "rau xanh")])
        assert normalizer.corrections == [("rau", "rau xanh")]

    def test_rule_exposing_a_later_match_settles(self):
        normalizer = TextNormalizer([("b", "a"), ("aa", "a")])
        assert normalizer.normalize("bbaa") == "A"

    def test_vocabulary_containing_its_pattern_applied_once(self):
        normalizer = TextNormalizer.with_vocabulary([("ok", "okay")])
        assert normalizer.normalize("ok") == "Okay"
        assert normalizer.normalize("ok , ok") == "Okay, okay"

    @pytest.mark.parametrize(
        "vocabulary, text",
        [
            ([("ok", "okay")], "ok"),
            ([("ok", "okay")], "  okay ok , ok "),
            ([("sữa", "hộp sữa")], "hai sữa"),
            ([("rau", "rau rau")], "rau"),
        ],
    )
    def test_vocabulary_keeps_normalization_idempotent(self, vocabulary, text):
        normalizer = TextNormalizer.with_vocabulary(vocabulary)
        once = normalizer.normalize(text)
        assert normalizer.normalize(once) == once
