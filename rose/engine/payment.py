"""Payment provider selection and handoff instructions."""

from __future__ import annotations

import secrets
from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_CEILING, Decimal
from typing import Any
from urllib.parse import urlencode

from rose.engine import templates
from rose.engine.phrases import contains_phrase, matches_choice, normalize
from rose.sessions.models import OrderDraft, PaymentProvider, utcnow

PROVIDER_KEYWORDS: tuple[tuple[PaymentProvider, tuple[str, ...]], ...] = (
    (PaymentProvider.WALLET, ("wave", "mobile money", "orange money")),
    (PaymentProvider.CARD, ("carte", "card", "cb", "visa", "mastercard", "stripe")),
    (PaymentProvider.CASH, ("livraison", "cash", "espèces", "especes", "liquide")),
)


def parse_provider(message: str) -> PaymentProvider | None:
    if matches_choice(message, templates.CHOICE_WAVE):
        return PaymentProvider.WALLET
    if matches_choice(message, templates.CHOICE_CARD):
        return PaymentProvider.CARD
    if matches_choice(message, templates.CHOICE_CASH):
        return PaymentProvider.CASH

    text = normalize(message)
    for provider, keywords in PROVIDER_KEYWORDS:
        if any(contains_phrase(text, keyword) for keyword in keywords):
            return provider
    return None


def xof_to_eur_cents(amount_fcfa: int, rate: float, minimum_cents: int) -> int:
    """Convert whole FCFA to euro cents, rounding up and never below ``minimum_cents``."""

    cents = (Decimal(amount_fcfa) * 100 / Decimal(str(rate))).to_integral_value(rounding=ROUND_CEILING)
    return max(int(cents), minimum_cents)


def new_order_ref(now: datetime | None = None) -> str:
    moment = now or utcnow()
    return f"VOSC-{moment:%y%m%d}-{secrets.token_hex(3).upper()}"


@dataclass(slots=True)
class PaymentInstruction:
    """What the widget should do once the buyer picked a provider."""

    provider: PaymentProvider
    message: str
    amount_fcfa: int
    order_ref: str
    show_payment: bool = False
    settlement_amount: int | None = None
    settlement_currency: str | None = None
    payment_url: str | None = None

    @property
    def completes_order(self) -> bool:
        """Wallet and cash orders are final once instructions are sent."""

        return self.provider is not PaymentProvider.CARD

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "provider": self.provider.value,
            "amount": self.amount_fcfa,
            "currency": "XOF",
            "orderRef": self.order_ref,
        }
        if self.settlement_amount is not None:
            payload["settlementAmount"] = self.settlement_amount
            payload["settlementCurrency"] = self.settlement_currency
        if self.payment_url:
            payload["paymentUrl"] = self.payment_url
        return payload


class PaymentHandoff:
    """Turns a completed draft into provider-specific instructions."""

    def __init__(
        self,
        *,
        xof_per_eur: float = 655.957,
        min_card_charge_cents: int = 50,
        wave_payment_url: str = "https://pay.wave.com/m/M_OfAgT8X_IT6P/c/sn/",
    ) -> None:
        if xof_per_eur <= 0:
            raise ValueError("xof_per_eur must be positive")
        self.xof_per_eur = xof_per_eur
        self.min_card_charge_cents = min_card_charge_cents
        self.wave_payment_url = wave_payment_url

    def handoff(self, provider: PaymentProvider, draft: OrderDraft, order_ref: str | None = None) -> PaymentInstruction:
        order_ref = order_ref or new_order_ref()
        total = draft.total

        if provider is PaymentProvider.CARD:
            return PaymentInstruction(
                provider=provider,
                message=templates.card_payment(total),
                amount_fcfa=total,
                order_ref=order_ref,
                show_payment=True,
                settlement_amount=xof_to_eur_cents(total, self.xof_per_eur, self.min_card_charge_cents),
                settlement_currency="eur",
            )

        if provider is PaymentProvider.WALLET:
            url = f"{self.wave_payment_url}?{urlencode({'amount': total})}"
            return PaymentInstruction(
                provider=provider,
                message=templates.wave_payment(order_ref, draft.phone, draft.address, draft.city, total, url),
                amount_fcfa=total,
                order_ref=order_ref,
                payment_url=url,
            )

        return PaymentInstruction(
            provider=provider,
            message=templates.cash_payment(order_ref, draft.phone, draft.address, draft.city, total),
            amount_fcfa=total,
            order_ref=order_ref,
        )
