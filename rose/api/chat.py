"""HTTP routes for the storefront chat widget."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter
from pydantic import BaseModel, ConfigDict, Field

from rose.engine.machine import ConversationStateMachine
from rose.engine.types import TurnRequest
from rose.sessions.models import StepTag


class ChatRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    session_id: str = Field(alias="sessionId", min_length=1, max_length=128)
    product_id: str | None = Field(default=None, alias="productId")
    message: str = Field(default="", max_length=2000)
    current_step: str | None = Field(default=None, alias="currentStep")
    order_data: dict[str, Any] | None = Field(default=None, alias="orderData")
    force_ai: bool = Field(default=False, alias="forceAI")

    def to_turn(self) -> TurnRequest:
        return TurnRequest(
            session_id=self.session_id,
            message=self.message,
            product_id=self.product_id,
            current_step=StepTag.parse(self.current_step),
            order_data=self.order_data,
            force_ai=self.force_ai,
        )


class PaymentConfirmation(BaseModel):
    """Outcome reported by the hosted card widget."""

    model_config = ConfigDict(populate_by_name=True)

    session_id: str = Field(alias="sessionId", min_length=1, max_length=128)
    succeeded: bool
    reference: str | None = Field(default=None, max_length=128)


def create_chat_router(machine: ConversationStateMachine) -> APIRouter:
    router = APIRouter(prefix="/chat", tags=["chat"])

    @router.post("")
    async def chat_endpoint(payload: ChatRequest) -> dict[str, Any]:
        reply = await machine.handle_turn(payload.to_turn())
        return reply.to_payload()

    @router.post("/payments/confirm")
    async def payment_confirmation_endpoint(payload: PaymentConfirmation) -> dict[str, Any]:
        reply = await machine.confirm_payment(payload.session_id, payload.succeeded, payload.reference)
        return reply.to_payload()

    @router.delete("/sessions/{session_id}")
    async def dispose_session_endpoint(session_id: str) -> dict[str, Any]:
        existed = await machine.dispose_session(session_id)
        return {"sessionId": session_id, "disposed": existed}

    return router
