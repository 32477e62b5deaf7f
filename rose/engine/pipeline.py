"""Response generation: rule templates, LLM providers and the guaranteed fallback."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Literal, Sequence

from pydantic import BaseModel, Field, ValidationError

from rose.catalogue.accessor import CatalogueAccessor
from rose.catalogue.models import Product, Testimonial
from rose.core.metrics import MetricsCollector
from rose.engine import templates
from rose.engine.analyzer import IntentAnalysis
from rose.engine.llm import ChatMessage, CompletionClient
from rose.engine.pricing import VOLUME_DISCOUNT_TIERS, format_fcfa
from rose.engine.recommendations import RecommendationGenerator
from rose.engine.types import ChatReply, Intent, ReplyActions, ReplyMetadata
from rose.sessions.models import CommunicationStyle, ConversationSession, RelationshipContext, StepTag

logger = logging.getLogger("rose.engine")

LLM_INTENTS = {Intent.QUESTION, Intent.SUPPORT}
RECOMMENDATION_INTENTS = {Intent.INFORMATION, Intent.HESITATION}
RECOMMENDATION_HISTORY_THRESHOLD = 3

STYLE_DIRECTIVES = {
    CommunicationStyle.FORMAL: "Vouvoie le client avec un ton courtois et posé.",
    CommunicationStyle.CASUAL: "Adopte un ton détendu et spontané, quelques emojis sont bienvenus.",
    CommunicationStyle.FRIENDLY: "Adopte un ton chaleureux et bienveillant.",
}

RELATIONSHIP_HINTS = {
    RelationshipContext.COUPLE: "Le client pense à son couple.",
    RelationshipContext.FAMILY: "Le client pense à sa famille.",
    RelationshipContext.FRIENDS: "Le client pense à ses amis.",
    RelationshipContext.PROFESSIONAL: "Le client pense à un usage professionnel (équipe, collègues).",
    RelationshipContext.SINGLE: "Le client cherche un jeu pour mieux se connaître.",
}

_CODE_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$")


class StructuredReply(BaseModel):
    """JSON shape requested from the model in structured mode."""

    message: str = Field(min_length=1)
    choices: list[str] = Field(default_factory=list, max_length=4)
    nextStep: Literal["question_mode", "express_quantity"] = "question_mode"


@dataclass(slots=True)
class ResponseContext:
    session: ConversationSession
    product: Product
    message: str
    analysis: IntentAnalysis
    force_ai: bool = False


class ResponsePipeline:
    """Produces free-conversation replies. :meth:`respond` never raises."""

    def __init__(
        self,
        catalogue: CatalogueAccessor,
        recommendations: RecommendationGenerator,
        clients: Sequence[CompletionClient] = (),
        *,
        brand_name: str = "VIENS ON S'CONNAÎT",
        whatsapp_number: str = "221781362728",
        temperature: float = 0.7,
        max_tokens: int = 300,
        history_turns: int = 6,
        structured: bool = False,
        metrics: MetricsCollector | None = None,
    ) -> None:
        self.catalogue = catalogue
        self.recommendations = recommendations
        self.clients = list(clients)
        self.brand_name = brand_name
        self.whatsapp_number = whatsapp_number
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.history_turns = history_turns
        self.structured = structured
        self.metrics = metrics

    async def respond(self, context: ResponseContext) -> ChatReply:
        try:
            reply = await self._respond(context)
        except Exception:  # noqa: BLE001
            logger.exception("Response generation failed for session %s", context.session.session_id)
            self._record_fallback("pipeline")
            reply = self.fallback_reply(context.product.name)

        reply.metadata.intent = context.analysis.intent.value
        reply.metadata.confidence = context.analysis.confidence
        return reply

    async def _respond(self, context: ResponseContext) -> ChatReply:
        intent = context.analysis.intent
        reply: ChatReply | None = None

        if self.clients and (context.force_ai or intent in LLM_INTENTS):
            reply = await self._llm_reply(context)
        if reply is None:
            reply = await self._rule_reply(context)

        if intent in RECOMMENDATION_INTENTS or len(context.session.history) > RECOMMENDATION_HISTORY_THRESHOLD:
            recommendations = await self.recommendations.recommend(
                context.product.id, intent, context.session.profile
            )
            reply.metadata.recommendations = [item.to_payload() for item in recommendations]
        return reply

    def fallback_reply(self, product_name: str) -> ChatReply:
        """Canned reply built from already-known data only."""

        return ChatReply(
            message=(
                f"Merci pour votre question sur **{product_name}** ! 😊 "
                "Je vous propose de découvrir comment il fonctionne, ou notre équipe "
                "peut vous répondre directement sur WhatsApp."
            ),
            choices=list(templates.FALLBACK_CHOICES),
            next_step=StepTag.QUESTION_MODE,
            metadata=ReplyMetadata(
                whatsapp_url=templates.whatsapp_url(self.whatsapp_number, f"Question sur {product_name}"),
            ),
        )

    async def _llm_reply(self, context: ResponseContext) -> ChatReply | None:
        system_prompt = await self.build_system_prompt(context)
        messages = self._conversation(context)

        for client in self.clients:
            try:
                text = await client.complete(
                    system_prompt,
                    messages,
                    temperature=self.temperature,
                    max_tokens=self.max_tokens,
                )
            except Exception as exc:  # noqa: BLE001
                logger.warning("LLM provider %s failed: %s", client.name, exc)
                self._record_fallback(f"llm_{client.name}")
                continue

            if self.structured:
                return self._parse_structured(text)
            return ChatReply(
                message=text,
                choices=list(templates.QUESTION_FOLLOW_UP_CHOICES),
                next_step=StepTag.QUESTION_MODE,
                metadata=ReplyMetadata(flags={"source": client.name}),
            )

        return None

    def _parse_structured(self, text: str) -> ChatReply | None:
        try:
            parsed = StructuredReply.model_validate_json(_CODE_FENCE.sub("", text.strip()))
        except ValidationError as exc:
            logger.warning("Structured completion rejected: %s", exc.errors()[:1])
            self._record_fallback("llm_parse")
            return None
        return ChatReply(
            message=parsed.message,
            choices=parsed.choices or list(templates.QUESTION_FOLLOW_UP_CHOICES),
            next_step=StepTag(parsed.nextStep),
            metadata=ReplyMetadata(flags={"source": "structured"}),
        )

    def _conversation(self, context: ResponseContext) -> list[ChatMessage]:
        turns = [
            ChatMessage(role=turn.role, content=turn.content)
            for turn in context.session.recent_history(self.history_turns)
            if turn.role in {"user", "assistant"}
        ]
        while turns and turns[0].role != "user":
            turns.pop(0)
        if not turns or turns[-1].role != "user" or turns[-1].content != context.message:
            turns.append(ChatMessage(role="user", content=context.message))
        return turns

    async def build_system_prompt(self, context: ResponseContext) -> str:
        product = context.product
        profile = context.session.profile
        lines = [
            f"Tu es {templates.PERSONA_NAME}, l'assistante d'achat de la boutique {self.brand_name} "
            "(jeux de cartes pour mieux se connaître, basée au Sénégal).",
            "",
            f"PRODUIT : {product.name}",
            f"Prix : {format_fcfa(product.price)}",
        ]
        if product.description:
            lines.append(f"Description : {product.description}")
        if product.game_rules:
            lines.append(f"Règles du jeu : {product.game_rules}")

        tiers = ", ".join(f"-{int(rate * 100)}% dès {threshold}" for threshold, rate in reversed(VOLUME_DISCOUNT_TIERS))
        lines.append(f"Remises sur quantité : {tiers}.")

        knowledge = await self._knowledge_answer(product.id, context.message)
        if knowledge:
            lines.extend(["", f"Information utile : {knowledge}"])

        lines.append("")
        lines.append(STYLE_DIRECTIVES[profile.communication_style])
        hint = RELATIONSHIP_HINTS.get(profile.relationship)
        if hint:
            lines.append(hint)
        lines.extend(
            [
                "",
                "RÈGLES :",
                "- Réponds en français, en 3 phrases maximum.",
                "- N'invente aucune information absente ci-dessus.",
                f"- Si tu ne sais pas, propose de contacter l'équipe sur WhatsApp (+{self.whatsapp_number}).",
                "- Termine si possible par une invitation douce à commander.",
            ]
        )
        if self.structured:
            lines.extend(
                [
                    "",
                    "Réponds UNIQUEMENT avec un objet JSON de la forme "
                    '{"message": "...", "choices": ["..."], "nextStep": "question_mode"}. '
                    'nextStep vaut "express_quantity" seulement si le client veut commander.',
                ]
            )
        return "\n".join(lines)

    async def _knowledge_answer(self, product_id: str, query: str) -> str | None:
        try:
            index = await self.catalogue.knowledge(product_id)
        except Exception:  # noqa: BLE001
            logger.warning("Knowledge base unavailable", exc_info=True)
            return None
        match = index.best_match(query)
        return match.entry.answer if match else None

    async def _rule_reply(self, context: ResponseContext) -> ChatReply:
        intent = context.analysis.intent
        product = context.product

        if intent is Intent.PURCHASE:
            return ChatReply(
                message=f"Super ! 🎉 Je peux vous réserver **{product.name}** en moins d'une minute.",
                choices=[templates.CHOICE_BUY_NOW, templates.CHOICE_ASK],
                next_step=StepTag.QUESTION_MODE,
            )
        if intent is Intent.INFORMATION:
            return self._information_reply(product)
        if intent is Intent.HESITATION:
            return await self._hesitation_reply(product)
        if intent is Intent.OBJECTION:
            return self._objection_reply(product)

        answer = await self._knowledge_answer(product.id, context.message)
        if answer:
            return ChatReply(
                message=answer,
                choices=list(templates.QUESTION_FOLLOW_UP_CHOICES),
                next_step=StepTag.QUESTION_MODE,
            )
        if intent is Intent.SUPPORT:
            return ChatReply(
                message=templates.SUPPORT_REDIRECT,
                choices=[templates.CHOICE_OTHER_QUESTION, templates.CHOICE_BUY_IT],
                next_step=StepTag.QUESTION_MODE,
                actions=ReplyActions(redirect_whatsapp=True),
                metadata=ReplyMetadata(whatsapp_url=templates.whatsapp_url(self.whatsapp_number)),
            )
        return self.fallback_reply(product.name)

    def _information_reply(self, product: Product) -> ChatReply:
        parts = [f"Voici **{product.name}** en quelques mots 📖"]
        if product.description:
            parts.append(product.description)
        if product.game_rules:
            parts.append(f"Comment jouer : {product.game_rules}")
        parts.append(f"Prix : {format_fcfa(product.price)}, livraison gratuite à Dakar.")
        return ChatReply(
            message="\n\n".join(parts),
            choices=[templates.CHOICE_BUY_IT, templates.CHOICE_RULES, templates.CHOICE_REVIEWS],
            next_step=StepTag.QUESTION_MODE,
        )

    async def reviews_reply(self, product: Product) -> ChatReply:
        try:
            testimonials = await self.catalogue.testimonials(product.id)
        except Exception:  # noqa: BLE001
            logger.warning("Testimonials unavailable for %s", product.id, exc_info=True)
            testimonials = []

        if testimonials:
            lines = [f"Voici ce que nos clients pensent de **{product.name}** :", ""]
            lines.extend(_testimonial_lines(testimonials[:3]))
        else:
            lines = [f"**{product.name}** fait déjà le bonheur de nombreuses familles, couples et équipes ⭐"]
        return ChatReply(
            message="\n".join(lines),
            choices=[templates.CHOICE_BUY_IT, templates.CHOICE_OTHER_QUESTION],
            next_step=StepTag.QUESTION_MODE,
            actions=ReplyActions(show_testimonials=bool(testimonials)),
        )

    async def rules_reply(self, product: Product) -> ChatReply:
        rules = product.game_rules or await self._knowledge_answer(product.id, "comment jouer règles du jeu")
        if not rules:
            return self.fallback_reply(product.name)
        return ChatReply(
            message=f"Comment jouer à **{product.name}** 📖\n\n{rules}",
            choices=[templates.CHOICE_BUY_IT, templates.CHOICE_OTHER_QUESTION, templates.CHOICE_REVIEWS],
            next_step=StepTag.QUESTION_MODE,
        )

    async def _hesitation_reply(self, product: Product) -> ChatReply:
        testimonials = await self.catalogue.testimonials(product.id)
        lines = ["Je comprends, prenez le temps qu'il vous faut 😊"]
        if testimonials:
            lines.append("\nVoici ce qu'en disent nos clients :")
            lines.extend(_testimonial_lines(testimonials[:2]))
        else:
            lines.append("Des centaines de couples, familles et équipes jouent déjà à nos jeux.")
        lines.append("\nEt si le jeu ne vous convient pas, nous trouvons une solution ensemble.")
        return ChatReply(
            message="\n".join(lines),
            choices=[templates.CHOICE_BUY_IT, templates.CHOICE_OTHER_QUESTION, templates.CHOICE_LEARN_MORE],
            next_step=StepTag.QUESTION_MODE,
            actions=ReplyActions(show_testimonials=bool(testimonials)),
        )

    def _objection_reply(self, product: Product) -> ChatReply:
        best_threshold, best_rate = VOLUME_DISCOUNT_TIERS[0]
        message = (
            f"Je comprends 🙏 À {format_fcfa(product.price)}, **{product.name}** vous offre des heures "
            "de conversations qui rapprochent, à rejouer encore et encore.\n\n"
            f"Et à plusieurs c'est encore mieux : jusqu'à -{int(best_rate * 100)}% "
            f"dès {best_threshold} exemplaires, parfait pour offrir."
        )
        return ChatReply(
            message=message,
            choices=[templates.CHOICE_BUY_IT, templates.CHOICE_REVIEWS, templates.CHOICE_OTHER_QUESTION],
            next_step=StepTag.QUESTION_MODE,
        )

    def _record_fallback(self, kind: str) -> None:
        if self.metrics is not None:
            self.metrics.record_fallback(kind)


def _testimonial_lines(testimonials: Sequence[Testimonial]) -> list[str]:
    lines = []
    for testimonial in testimonials:
        signature = testimonial.customer_name
        if testimonial.location:
            signature += f", {testimonial.location}"
        lines.append(f"⭐ « {testimonial.content} » ({signature})")
    return lines
