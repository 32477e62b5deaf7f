"""Scored cross-sell recommendations and the post-order upsell reply."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from rose.catalogue.accessor import CatalogueAccessor
from rose.catalogue.models import Product
from rose.engine import templates
from rose.engine.pricing import format_fcfa
from rose.engine.types import ChatReply, Intent, ReplyActions, ReplyMetadata
from rose.sessions.models import PriceSensitivity, RelationshipContext, StepTag, UserProfile

logger = logging.getLogger("rose.engine")

BASE_SCORE = 0.5
RELATIONSHIP_BONUS = 0.3
INTEREST_BONUS = 0.1
PRICE_BONUS = 0.1
BUDGET_PRICE_CEILING = 14000
PREMIUM_PRICE_FLOOR = 16000

RELATIONSHIP_KEYWORDS: dict[RelationshipContext, tuple[str, ...]] = {
    RelationshipContext.COUPLE: ("couple", "amour", "amoureux"),
    RelationshipContext.FAMILY: ("famille", "familial", "enfant"),
    RelationshipContext.FRIENDS: ("ami", "amis", "amitié"),
    RelationshipContext.PROFESSIONAL: ("collègue", "professionnel", "entreprise", "équipe"),
    RelationshipContext.SINGLE: ("célibataire", "solo", "soi"),
}

RELATIONSHIP_REASONS: dict[RelationshipContext, str] = {
    RelationshipContext.COUPLE: "Idéal pour renforcer votre complicité de couple 💕",
    RelationshipContext.FAMILY: "Parfait pour des moments de partage en famille 👨‍👩‍👧",
    RelationshipContext.FRIENDS: "Génial pour des soirées entre amis 🎉",
    RelationshipContext.PROFESSIONAL: "Idéal pour renforcer la cohésion d'équipe 🤝",
    RelationshipContext.SINGLE: "Pour mieux se connaître soi-même ✨",
}
INTEREST_REASON = "Correspond à ce qui vous intéresse"
PRICE_REASON = {
    PriceSensitivity.BUDGET: "Un excellent rapport qualité-prix",
    PriceSensitivity.PREMIUM: "Notre édition la plus complète",
}
DEFAULT_REASON = "Très apprécié par nos clients ⭐"


@dataclass(slots=True)
class ProductRecommendation:
    product_id: str
    name: str
    price: int
    discounted_price: int | None
    reason: str
    priority: str
    score: float

    def to_payload(self) -> dict[str, Any]:
        return {
            "productId": self.product_id,
            "name": self.name,
            "price": self.price,
            "discountedPrice": self.discounted_price,
            "reason": self.reason,
            "priority": self.priority,
            "score": self.score,
        }


def priority_for(score: float) -> str:
    if score > 0.8:
        return "high"
    if score > 0.5:
        return "medium"
    return "low"


def score_product(product: Product, profile: UserProfile) -> tuple[float, str]:
    """Score in [0, 1] plus the reason string of the strongest contributing factor."""

    haystack = f"{product.name} {product.category}".lower()
    description = f"{product.name} {product.description}".lower()
    score = BASE_SCORE
    factors: list[tuple[float, str]] = []

    keywords = RELATIONSHIP_KEYWORDS.get(profile.relationship, ())
    if keywords and any(keyword in haystack for keyword in keywords):
        score += RELATIONSHIP_BONUS
        factors.append((RELATIONSHIP_BONUS, RELATIONSHIP_REASONS[profile.relationship]))

    interest_hits = [interest for interest in profile.interests if interest.lower() in description]
    if interest_hits:
        bonus = INTEREST_BONUS * len(interest_hits)
        score += bonus
        factors.append((bonus, f"{INTEREST_REASON} : {', '.join(interest_hits)}"))

    if (
        profile.price_sensitivity is PriceSensitivity.BUDGET and product.price <= BUDGET_PRICE_CEILING
    ) or (
        profile.price_sensitivity is PriceSensitivity.PREMIUM and product.price >= PREMIUM_PRICE_FLOOR
    ):
        score += PRICE_BONUS
        factors.append((PRICE_BONUS, PRICE_REASON[profile.price_sensitivity]))

    score = round(min(score, 1.0), 4)
    reason = max(factors, key=lambda factor: factor[0])[1] if factors else DEFAULT_REASON
    return score, reason


class RecommendationGenerator:
    """Ranks other sellable products for a buyer profile."""

    def __init__(self, catalogue: CatalogueAccessor) -> None:
        self.catalogue = catalogue

    async def recommend(
        self,
        current_product_id: str | None,
        intent: Intent | None,
        profile: UserProfile,
        limit: int = 3,
    ) -> list[ProductRecommendation]:
        try:
            candidates = await self.catalogue.recommendation_candidates(current_product_id)
        except Exception:  # noqa: BLE001
            logger.warning("Recommendation candidates unavailable", exc_info=True)
            return []

        ranked: list[ProductRecommendation] = []
        for product in candidates:
            if product.id == current_product_id or not product.is_active or not product.in_stock:
                continue
            score, reason = score_product(product, profile)
            discounted = product.price if product.compare_at_price and product.compare_at_price > product.price else None
            ranked.append(
                ProductRecommendation(
                    product_id=product.id,
                    name=product.name,
                    price=product.compare_at_price if discounted is not None else product.price,
                    discounted_price=discounted,
                    reason=reason,
                    priority=priority_for(score),
                    score=score,
                )
            )

        ranked.sort(key=lambda item: item.score, reverse=True)
        logger.debug("Ranked %d recommendations for intent %s", len(ranked), intent.value if intent else None)
        return ranked[:limit]

    async def upsell_reply(
        self,
        lead_message: str,
        current_product_id: str | None,
        profile: UserProfile,
        next_step: StepTag = StepTag.ORDER_FINALIZED,
        metadata: ReplyMetadata | None = None,
    ) -> ChatReply:
        """Order follow-up: the lead message plus up to three add-on offers."""

        recommendations = await self.recommend(current_product_id, Intent.PURCHASE, profile)
        metadata = metadata or ReplyMetadata()
        metadata.recommendations = [item.to_payload() for item in recommendations]

        if not recommendations:
            return ChatReply(
                message=lead_message,
                choices=[templates.CHOICE_TRACK_ORDER, templates.CHOICE_FINISH],
                next_step=next_step,
                metadata=metadata,
            )

        lines = [lead_message, "", "Nos clients aiment aussi :"]
        for item in recommendations:
            price = item.discounted_price if item.discounted_price is not None else item.price
            lines.append(f"• **{item.name}** ({format_fcfa(price)}) : {item.reason}")
        choices = [f"{templates.ADD_PRODUCT_PREFIX}{item.name}" for item in recommendations]
        choices.extend([templates.CHOICE_TRACK_ORDER, templates.CHOICE_FINISH])

        return ChatReply(
            message="\n".join(lines),
            choices=choices,
            next_step=next_step,
            actions=ReplyActions(trigger_upsell=True),
            metadata=metadata,
        )
