"""Dataclasses representing conversation sessions, order drafts and buyer profiles."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from rose.core.errors import OrderDraftLocked
from rose.engine.pricing import volume_discount

MAX_HISTORY_TURNS = 50


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class StepTag(str, Enum):
    """Where a session sits in the conversation flow."""

    INITIAL = "initial"
    QUESTION_MODE = "question_mode"
    EXPRESS_QUANTITY = "express_quantity"
    EXPRESS_CUSTOM_QUANTITY = "express_custom_quantity"
    EXPRESS_CONTACT = "express_contact"
    EXPRESS_PHONE = "express_phone"
    EXPRESS_ADDRESS = "express_address"
    EXPRESS_PAYMENT = "express_payment"
    CONFIRMATION = "confirmation"
    ORDER_FINALIZED = "order_finalized"
    UPSELL_SELECTION = "upsell_selection"
    ERROR_RECOVERY = "error_recovery"
    OUT_OF_STOCK = "out_of_stock"
    PRODUCT_UNAVAILABLE = "product_unavailable"

    @classmethod
    def parse(cls, value: str | None) -> StepTag | None:
        if not value:
            return None
        try:
            return cls(value)
        except ValueError:
            return None


class PaymentProvider(str, Enum):
    CARD = "card"
    WALLET = "wave"
    CASH = "cash"


class RelationshipContext(str, Enum):
    SINGLE = "single"
    COUPLE = "couple"
    FAMILY = "family"
    FRIENDS = "friends"
    PROFESSIONAL = "professional"
    UNKNOWN = "unknown"


class CommunicationStyle(str, Enum):
    FORMAL = "formal"
    CASUAL = "casual"
    FRIENDLY = "friendly"


class PriceSensitivity(str, Enum):
    BUDGET = "budget"
    STANDARD = "standard"
    PREMIUM = "premium"


@dataclass(slots=True)
class MessageTurn:
    """Single conversational turn stored in memory."""

    session_id: str
    role: str
    content: str
    created_at: datetime = field(default_factory=utcnow)
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class OrderDraft:
    """Order data collected by the express flow. Amounts are whole FCFA."""

    product_id: str
    product_name: str
    unit_price: int
    quantity: int = 1
    first_name: str = ""
    last_name: str = ""
    phone: str = ""
    city: str = ""
    address: str = ""
    delivery_cost: int = 0
    payment_provider: PaymentProvider | None = None
    known_address: bool = False
    finalized: bool = False
    order_ref: str = ""

    @property
    def subtotal(self) -> int:
        return self.unit_price * self.quantity

    @property
    def discount(self) -> int:
        return volume_discount(self.quantity, self.unit_price)

    @property
    def total(self) -> int:
        return self.subtotal - self.discount + self.delivery_cost

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def update(self, **changes: Any) -> None:
        if self.finalized:
            raise OrderDraftLocked(f"order {self.order_ref or self.product_id} is finalized")
        for name, value in changes.items():
            if not hasattr(self, name):
                raise AttributeError(name)
            setattr(self, name, value)

    def finalize(self, order_ref: str) -> None:
        self.update(order_ref=order_ref)
        self.finalized = True

    def to_payload(self) -> dict[str, Any]:
        """Outbound ``orderData`` shape."""

        return {
            "productId": self.product_id,
            "productName": self.product_name,
            "unitPrice": self.unit_price,
            "quantity": self.quantity,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "phone": self.phone,
            "city": self.city,
            "address": self.address,
            "deliveryCost": self.delivery_cost,
            "discount": self.discount,
            "subtotal": self.subtotal,
            "totalAmount": self.total,
            "paymentMethod": self.payment_provider.value if self.payment_provider else None,
            "orderRef": self.order_ref or None,
            "finalized": self.finalized,
        }


@dataclass(slots=True)
class UserProfile:
    """Accumulated buyer signals. List fields are bounded sliding windows."""

    relationship: RelationshipContext = RelationshipContext.UNKNOWN
    interests: list[str] = field(default_factory=list)
    concerns: list[str] = field(default_factory=list)
    topics: list[str] = field(default_factory=list)
    communication_style: CommunicationStyle = CommunicationStyle.FRIENDLY
    buying_signals: list[str] = field(default_factory=list)
    price_sensitivity: PriceSensitivity = PriceSensitivity.STANDARD
    message_count: int = 0
    last_activity: datetime | None = None


@dataclass(slots=True)
class ConversationSession:
    """Everything the engine knows about one visitor conversation."""

    session_id: str
    product_id: str | None = None
    step: StepTag = StepTag.INITIAL
    draft: OrderDraft | None = None
    history: list[MessageTurn] = field(default_factory=list)
    profile: UserProfile = field(default_factory=UserProfile)
    last_order: OrderDraft | None = None
    resume_step: StepTag | None = None
    created_at: datetime = field(default_factory=utcnow)
    last_activity: datetime = field(default_factory=utcnow)

    def record(self, role: str, content: str, **metadata: Any) -> MessageTurn:
        turn = MessageTurn(session_id=self.session_id, role=role, content=content, metadata=metadata)
        self.history.append(turn)
        if len(self.history) > MAX_HISTORY_TURNS:
            del self.history[:-MAX_HISTORY_TURNS]
        self.last_activity = turn.created_at
        return turn

    def recent_history(self, limit: int) -> list[MessageTurn]:
        if limit <= 0:
            return []
        return self.history[-limit:]
