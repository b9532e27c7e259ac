"""
Tests for product matching and quantity extraction.
"""

from types import SimpleNamespace

import pytest

from seven_commerce.detection.matching import extract_quantity, match_product


def product(name, sku=None):
    return SimpleNamespace(name=name, sku=sku)


class TestMatchProduct:
    def test_exact_name(self):
        result = match_product("je veux le Samsung S21 Ultra", product("Samsung S21 Ultra"))
        assert result.matched is True
        assert result.score == 10

    def test_singular_form(self):
        result = match_product("une montre", product("Montres"))
        assert result.matched is True
        assert result.score == 9

    def test_word_match(self):
        """Test half of the significant words is enough."""
        result = match_product("des chaussures nike", product("Chaussures de sport Nike"))
        assert result.matched is True
        assert result.score == 2

    def test_sku_match(self):
        result = match_product("je veux le mk20", product("Montre connectée", sku="MK20"))
        assert result.matched is True
        assert result.score == 8

    def test_no_match(self):
        assert match_product("bonjour", product("T-shirt")).matched is False

    def test_empty_name(self):
        assert match_product("bonjour", product("")).matched is False


class TestExtractQuantity:
    @pytest.mark.parametrize(
        "text,name,expected",
        [
            ("je veux 3 poulets", "Poulet", 3),
            ("je veux deux poulets", "Poulet", 2),
            ("Savon x 3", "Savon", 3),
            ("je veux 2 Samsung S21 Ultra", "Samsung S21 Ultra", 2),
            ("je prends 4", "Riz", 4),
        ],
    )
    def test_quantity(self, text, name, expected):
        assert extract_quantity(text, name) == expected

    def test_model_number_is_not_quantity(self):
        """Test "K20" in the product name does not become 20."""
        assert extract_quantity("je veux la montre k20", "Montre K20") == 1

    def test_quantity_sharing_digit_with_model(self):
        """Test "2" is a quantity even though "S21" contains a 2."""
        assert extract_quantity("je veux 2 Samsung S21 Ultra", "Samsung S21 Ultra") == 2
        assert extract_quantity("je veux 3 iphone 12", "iPhone 12") == 3
        assert extract_quantity("je veux le pack 3 savons", "Pack 3 savons") == 1

    def test_model_number_after_name(self):
        assert extract_quantity("je veux le Samsung S21", "Samsung S21 Ultra") == 1

    def test_quantity_is_clamped(self):
        assert extract_quantity("je veux 500", "Riz") == 100

    def test_default_quantity(self):
        assert extract_quantity("je veux du riz", "Riz") == 1
