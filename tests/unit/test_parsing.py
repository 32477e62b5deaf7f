import pytest

from rose.core.errors import OrderDraftLocked
from rose.engine.parsing import parse_full_name, parse_quantity, split_address
from rose.engine.phone import parse_phone
from rose.engine.pricing import delivery_cost, discount_rate, format_fcfa, volume_discount
from rose.sessions.models import OrderDraft


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("3 exemplaires", 3),
        ("deux", 2),
        ("Je veux quatre jeux", 4),
        ("12", 12),
        ("beaucoup", None),
    ],
)
def test_parse_quantity(text, expected):
    assert parse_quantity(text) == expected


def test_parse_full_name():
    assert parse_full_name("aminata diallo") == ("Aminata", "Diallo")
    assert parse_full_name("jean-paul de la tour") == ("Jean-Paul", "De La Tour")
    assert parse_full_name("Aminata") is None
    assert parse_full_name("R2D2 robot") is None


def test_split_address():
    assert split_address("Mermoz, Dakar", "Dakar") == ("Mermoz", "Dakar")
    assert split_address("Rue 10, Point E, thiès", "Dakar") == ("Rue 10, Point E", "Thiès")
    assert split_address("Sacré-Coeur 3", "Dakar") == ("Sacré-Coeur 3", "Dakar")
    assert split_address("ab, Dakar", "Dakar") is None
    assert split_address(" , ", "Dakar") is None


@pytest.mark.parametrize(
    ("text", "country", "e164"),
    [
        ("77 123 45 67", "SN", "+221771234567"),
        ("+221 77 123 45 67", "SN", "+221771234567"),
        ("221771234567", "SN", "+221771234567"),
        ("00225 07 01 02 03 04", "CI", "+2250701020304"),
        ("+33 6 12 34 56 78", "FR", "+33612345678"),
        ("+33 06 12 34 56 78", "FR", "+33612345678"),
    ],
)
def test_parse_phone_accepts_known_prefixes(text, country, e164):
    phone = parse_phone(text)

    assert phone is not None
    assert phone.country == country
    assert phone.e164 == e164


@pytest.mark.parametrize("text", ["12345", "69 123 45 67", "appelez-moi", "+999 123 456 789"])
def test_parse_phone_rejects_invalid_numbers(text):
    assert parse_phone(text) is None


def test_discount_tiers():
    assert [discount_rate(quantity) for quantity in (1, 2, 3, 4, 10)] == [0.0, 0.10, 0.15, 0.20, 0.20]
    assert volume_discount(3, 14000) == 6300
    assert volume_discount(0, 14000) == 0


def test_discount_is_monotonic_in_quantity():
    discounts = [volume_discount(quantity, 14000) for quantity in range(1, 21)]

    assert discounts == sorted(discounts)


def test_delivery_costs():
    assert delivery_cost("Dakar") == 0
    assert delivery_cost("thiès") == 3000
    assert delivery_cost("Saint Louis") == 3000
    assert delivery_cost("Abidjan") == 2500
    assert delivery_cost("Paris") == 2500


def test_format_fcfa():
    assert format_fcfa(28000) == "28 000 FCFA"
    assert format_fcfa(1500000) == "1 500 000 FCFA"
    assert format_fcfa(0) == "0 FCFA"


def test_order_total_matches_its_parts():
    draft = OrderDraft(product_id="couples", product_name="Pour les Couples", unit_price=14000)
    draft.update(quantity=3, delivery_cost=3000)

    assert draft.subtotal == 42000
    assert draft.discount == 6300
    assert draft.total == draft.subtotal - draft.discount + draft.delivery_cost == 38700
    assert draft.to_payload()["totalAmount"] == 38700


def test_finalized_draft_is_locked():
    draft = OrderDraft(product_id="couples", product_name="Pour les Couples", unit_price=14000)
    draft.finalize("VOSC-240101-ABCDEF")

    with pytest.raises(OrderDraftLocked):
        draft.update(quantity=2)
    assert draft.to_payload()["orderRef"] == "VOSC-240101-ABCDEF"
