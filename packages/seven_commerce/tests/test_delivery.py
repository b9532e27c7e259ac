"""
Tests for delivery information extraction and the notes block.
"""

import pytest

from seven_commerce.detection.delivery import (
    DeliveryInfo,
    extract_delivery_info,
    format_delivery_block,
    merge_delivery_block,
    parse_delivery_block,
)


class TestExtractDeliveryInfo:
    @pytest.mark.parametrize(
        "text",
        ["Bingerville, Santai 0758519080", "Bingerville Santai 0758519080"],
    )
    def test_city_neighborhood_phone_message(self, text):
        """Test the bare "City, Quartier phone" form."""
        info = extract_delivery_info(text)
        assert info.city == "Bingerville"
        assert info.neighborhood == "Santai"
        assert info.phone == "0758519080"

    def test_labelled_message(self):
        info = extract_delivery_info("ville: Abidjan quartier Cocody numéro 07 58 51 90 80")
        assert info.city == "Abidjan"
        assert info.neighborhood == "Cocody"
        assert info.phone == "0758519080"

    def test_je_suis_a(self):
        info = extract_delivery_info("je suis à Cocody")
        assert info.city == "Cocody"
        assert info.neighborhood is None
        assert info.phone is None

    def test_contact_with_country_code(self):
        info = extract_delivery_info("mon contact: +225 07 58 51 90 80")
        assert info.phone == "+2250758519080"

    def test_nothing_found(self):
        info = extract_delivery_info("bonjour")
        assert info.has_delivery_info is False

    def test_none_text(self):
        assert extract_delivery_info(None).has_delivery_info is False


class TestDeliveryBlock:
    def test_format_full_block(self):
        info = DeliveryInfo(city="Bingerville", neighborhood="Santai", phone="0758519080")
        assert (
            format_delivery_block(info)
            == "[LIVRAISON]ville:Bingerville|quartier:Santai|tel:0758519080"
        )

    def test_format_partial_block(self):
        assert format_delivery_block(DeliveryInfo(phone="0102030405")) == "[LIVRAISON]tel:0102030405"

    def test_format_empty_block(self):
        assert format_delivery_block(DeliveryInfo()) is None

    def test_merge_appends_block(self):
        notes = merge_delivery_block("Commande détectée", "[LIVRAISON]ville:Abidjan")
        assert notes == "Commande détectée\n[LIVRAISON]ville:Abidjan"

    def test_merge_into_empty_notes(self):
        assert merge_delivery_block(None, "[LIVRAISON]ville:Abidjan") == "[LIVRAISON]ville:Abidjan"

    def test_merge_replaces_existing_block(self):
        """Test only one delivery block is ever kept."""
        notes = "Commande détectée\n[LIVRAISON]ville:Abidjan\nMerci"
        merged = merge_delivery_block(notes, "[LIVRAISON]ville:Bouaké|tel:0102030405")
        assert merged == "Commande détectée\n[LIVRAISON]ville:Bouaké|tel:0102030405\nMerci"
        assert merged.count("[LIVRAISON]") == 1

    def test_parse_block(self):
        notes = "Commande\n[LIVRAISON]ville:Bingerville|quartier:Santai|tel:0758519080"
        info = parse_delivery_block(notes)
        assert info == DeliveryInfo(city="Bingerville", neighborhood="Santai", phone="0758519080")

    def test_parse_without_block(self):
        assert parse_delivery_block("Commande") == DeliveryInfo()
        assert parse_delivery_block(None) == DeliveryInfo()
