"""Engine-level enums and reply envelopes."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from rose.sessions.models import StepTag


class Intent(str, Enum):
    """Coarse buyer intents, in classification order."""

    PURCHASE = "purchase"
    QUESTION = "question"
    INFORMATION = "information"
    HESITATION = "hesitation"
    OBJECTION = "objection"
    SUPPORT = "support"


@dataclass(slots=True)
class TurnRequest:
    """Inbound turn as received from the storefront widget."""

    session_id: str
    message: str
    product_id: str | None = None
    current_step: StepTag | None = None
    order_data: dict[str, Any] | None = None
    force_ai: bool = False


@dataclass(slots=True)
class ReplyActions:
    show_cart: bool = False
    show_payment: bool = False
    trigger_upsell: bool = False
    show_testimonials: bool = False
    redirect_whatsapp: bool = False

    def any(self) -> bool:
        return any(
            (
                self.show_cart,
                self.show_payment,
                self.trigger_upsell,
                self.show_testimonials,
                self.redirect_whatsapp,
            )
        )

    def to_payload(self) -> dict[str, bool]:
        return {
            "showCart": self.show_cart,
            "showPayment": self.show_payment,
            "triggerUpsell": self.trigger_upsell,
            "showTestimonials": self.show_testimonials,
            "redirectWhatsApp": self.redirect_whatsapp,
        }


@dataclass(slots=True)
class ReplyMetadata:
    order_data: dict[str, Any] | None = None
    payment: dict[str, Any] | None = None
    recommendations: list[dict[str, Any]] = field(default_factory=list)
    whatsapp_url: str | None = None
    intent: str | None = None
    confidence: float | None = None
    flags: dict[str, Any] = field(default_factory=dict)

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {}
        if self.order_data is not None:
            payload["orderData"] = self.order_data
        if self.payment is not None:
            payload["payment"] = self.payment
        if self.recommendations:
            payload["recommendations"] = self.recommendations
        if self.whatsapp_url:
            payload["whatsappUrl"] = self.whatsapp_url
        if self.intent is not None:
            payload["intent"] = self.intent
        if self.confidence is not None:
            payload["confidence"] = self.confidence
        if self.flags:
            payload["flags"] = self.flags
        return payload


@dataclass(slots=True)
class ChatReply:
    """Outbound envelope: what Rose says and where the session goes next."""

    message: str
    choices: list[str]
    next_step: StepTag
    actions: ReplyActions = field(default_factory=ReplyActions)
    metadata: ReplyMetadata = field(default_factory=ReplyMetadata)

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "message": self.message,
            "choices": list(self.choices),
            "nextStep": self.next_step.value,
        }
        if self.actions.any():
            payload["actions"] = self.actions.to_payload()
        metadata = self.metadata.to_payload()
        if metadata:
            payload["metadata"] = metadata
        return payload
