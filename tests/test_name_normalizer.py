"""Tests for product name normalization and identity extraction."""

from __future__ import annotations

import pytest

from name_normalizer import (
    base_names_match,
    brands_match,
    extract_product_info,
    normalize_product_name,
)


class TestNormalize:

    @pytest.mark.parametrize("raw, expected", [
        ("Kroger", "kroger"),
        ("The Kroger® French Fries", "kroger french fries"),
        ("Ben & Jerry's™", "ben and jerrys"),
        ("  Simple   Truth  ", "simple truth"),
        ("“Quoted” Brand", "quoted brand"),
        ("Sugar-Free (12 oz.)", "sugar-free 12 oz"),
        ("An Apple", "apple"),
        ("A", "a"),
        ("Theater Snacks", "theater snacks"),
    ])
    def test_normalize_examples(self, raw, expected):
        assert normalize_product_name(raw) == expected

    @pytest.mark.parametrize("raw", ["", None])
    def test_empty_input(self, raw):
        assert normalize_product_name(raw) == ""

    @pytest.mark.parametrize("raw", [
        "The Kroger® French Fries",
        " the x",
        "The The Band",
        "a an the thing",
        "Ben & Jerry's",
        "!!!",
        "the -",
        "Über Chips",
    ])
    def test_idempotent(self, raw):
        once = normalize_product_name(raw)
        assert normalize_product_name(once) == once


class TestExtractProductInfo:

    def test_dash_separator(self):
        info = extract_product_info("Kroger - French Fries")
        assert info["brand"] == "Kroger"
        assert info["base_name"] == "French Fries"
        assert info["normalized_brand"] == "kroger"
        assert info["normalized_base_name"] == "french fries"

    def test_no_separator_uses_full_name(self):
        info = extract_product_info("Simple Truth")
        assert info["brand"] == "Simple Truth"
        assert info["base_name"] == "Simple Truth"
        assert info["normalized_brand"] == info["normalized_base_name"] == "simple truth"

    def test_separator_precedence(self):
        # " - " is tried before ","
        info = extract_product_info("Kroger, Value - Chips, Salted")
        assert info["brand"] == "Kroger, Value"
        assert info["base_name"] == "Chips, Salted"

    def test_splits_on_first_occurrence_only(self):
        info = extract_product_info("Lay's | Classic | Family Size")
        assert info["brand"] == "Lay's"
        assert info["base_name"] == "Classic | Family Size"

    def test_empty_remainder_falls_back(self):
        info = extract_product_info("Kroger - ")
        assert info["brand"] == "Kroger -"
        assert info["base_name"] == "Kroger -"

    def test_empty_input(self):
        assert extract_product_info("") == {
            "brand": "", "base_name": "", "normalized_brand": "", "normalized_base_name": "",
        }

    def test_reflexive(self):
        raw = "The Kroger® Co. : French-Fried Potatoes"
        assert extract_product_info(raw) == extract_product_info(raw)


class TestMatching:

    def test_strict_equality(self):
        assert brands_match("kroger", "kroger")
        assert not brands_match("coca cola", "coca-cola")
        assert base_names_match("french fries", "french fries")
        assert not base_names_match("french fries", "french fry")
