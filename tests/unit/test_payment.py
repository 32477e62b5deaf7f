import re

import pytest

from rose.engine.payment import PaymentHandoff, new_order_ref, parse_provider, xof_to_eur_cents
from rose.sessions.models import OrderDraft, PaymentProvider


def make_draft(quantity=1):
    draft = OrderDraft(product_id="couples", product_name="Pour les Couples", unit_price=14000)
    draft.update(
        quantity=quantity,
        first_name="Aminata",
        last_name="Diallo",
        phone="+221771234567",
        address="Mermoz",
        city="Dakar",
    )
    return draft


@pytest.mark.parametrize(
    ("message", "provider"),
    [
        ("📱 Wave", PaymentProvider.WALLET),
        ("💳 Carte bancaire", PaymentProvider.CARD),
        ("🚚 Paiement à la livraison", PaymentProvider.CASH),
        ("je paie par carte", PaymentProvider.CARD),
        ("en espèces", PaymentProvider.CASH),
        ("orange money", PaymentProvider.WALLET),
        ("bitcoin", None),
    ],
)
def test_parse_provider(message, provider):
    assert parse_provider(message) is provider


def test_xof_to_eur_cents_rounds_up_with_minimum():
    assert xof_to_eur_cents(14000, 655.957, 50) == 2135
    assert xof_to_eur_cents(655957, 655.957, 50) == 100000
    assert xof_to_eur_cents(100, 655.957, 50) == 50


def test_order_ref_format():
    assert re.fullmatch(r"VOSC-\d{6}-[0-9A-F]{6}", new_order_ref())


def test_card_handoff_waits_for_confirmation():
    instruction = PaymentHandoff().handoff(PaymentProvider.CARD, make_draft(), order_ref="VOSC-240101-AAAAAA")

    assert not instruction.completes_order
    assert instruction.show_payment
    assert instruction.to_payload() == {
        "provider": "card",
        "amount": 14000,
        "currency": "XOF",
        "orderRef": "VOSC-240101-AAAAAA",
        "settlementAmount": 2135,
        "settlementCurrency": "eur",
    }


def test_wave_handoff_builds_merchant_link():
    instruction = PaymentHandoff().handoff(PaymentProvider.WALLET, make_draft(quantity=2))

    assert instruction.completes_order
    assert instruction.amount_fcfa == 25200
    assert instruction.payment_url == "https://pay.wave.com/m/M_OfAgT8X_IT6P/c/sn/?amount=25200"
    assert instruction.payment_url in instruction.message
    assert instruction.order_ref in instruction.message


def test_cash_handoff_mentions_delivery():
    instruction = PaymentHandoff().handoff(PaymentProvider.CASH, make_draft())

    assert instruction.completes_order
    assert instruction.payment_url is None
    assert "à la livraison" in instruction.message


def test_rate_must_be_positive():
    with pytest.raises(ValueError):
        PaymentHandoff(xof_per_eur=0)
