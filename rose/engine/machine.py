"""Conversation state machine driving free conversation and the express order flow."""

from __future__ import annotations

import logging
import re
from typing import Any, Awaitable, Callable

from rose.catalogue.accessor import CatalogueAccessor
from rose.catalogue.models import Customer, Product
from rose.core.errors import StoreUnavailableError
from rose.core.metrics import MetricsCollector
from rose.engine import templates
from rose.engine.analyzer import IntentAnalysis, IntentAnalyzer, apply_profile_delta
from rose.engine.pacing import NoTypingDelay, TypingDelay
from rose.engine.parsing import parse_full_name, parse_quantity, split_address
from rose.engine.payment import PaymentHandoff, parse_provider
from rose.engine.phone import parse_phone
from rose.engine.phrases import AddressReply, classify_address_reply, matches_choice, normalize, normalize_choice
from rose.engine.pipeline import ResponseContext, ResponsePipeline
from rose.engine.pricing import delivery_cost
from rose.engine.recommendations import RecommendationGenerator
from rose.engine.types import ChatReply, Intent, ReplyActions, ReplyMetadata, TurnRequest
from rose.sessions.models import ConversationSession, OrderDraft, PaymentProvider, StepTag
from rose.sessions.registry import SessionRegistry

logger = logging.getLogger("rose.engine")

MAX_ORDER_QUANTITY = 10
GREETING = re.compile(r"(?<!\w)(?:bonjour|bonsoir|salut|hello|coucou|hi|hey)(?!\w)")

StepHandler = Callable[[ConversationSession, TurnRequest, str, IntentAnalysis], Awaitable[ChatReply]]

EXPRESS_STEPS = {
    StepTag.EXPRESS_QUANTITY,
    StepTag.EXPRESS_CUSTOM_QUANTITY,
    StepTag.EXPRESS_CONTACT,
    StepTag.EXPRESS_PHONE,
    StepTag.EXPRESS_ADDRESS,
    StepTag.EXPRESS_PAYMENT,
    StepTag.CONFIRMATION,
}


class ConversationStateMachine:
    """Routes each inbound turn to the handler for the session's current step.

    Turns of one session are processed one at a time, in arrival order. Every
    public entry point returns a well-formed :class:`ChatReply`; unexpected
    failures become the apology reply and move the session to
    ``error_recovery``.
    """

    def __init__(
        self,
        registry: SessionRegistry,
        catalogue: CatalogueAccessor,
        analyzer: IntentAnalyzer,
        pipeline: ResponsePipeline,
        recommendations: RecommendationGenerator,
        payments: PaymentHandoff,
        *,
        typing_delay: TypingDelay | None = None,
        metrics: MetricsCollector | None = None,
        whatsapp_number: str = "221781362728",
        default_city: str = "Dakar",
    ) -> None:
        self.registry = registry
        self.catalogue = catalogue
        self.analyzer = analyzer
        self.pipeline = pipeline
        self.recommendations = recommendations
        self.payments = payments
        self.typing_delay = typing_delay or NoTypingDelay()
        self.metrics = metrics
        self.whatsapp_number = whatsapp_number
        self.default_city = default_city
        self._handlers: dict[StepTag, StepHandler] = {
            StepTag.INITIAL: self._free_conversation,
            StepTag.QUESTION_MODE: self._free_conversation,
            StepTag.EXPRESS_QUANTITY: self._quantity_step,
            StepTag.EXPRESS_CUSTOM_QUANTITY: self._quantity_step,
            StepTag.EXPRESS_CONTACT: self._contact_step,
            StepTag.EXPRESS_PHONE: self._phone_step,
            StepTag.EXPRESS_ADDRESS: self._address_step,
            StepTag.EXPRESS_PAYMENT: self._payment_step,
            StepTag.CONFIRMATION: self._confirmation_step,
            StepTag.ORDER_FINALIZED: self._post_order_step,
            StepTag.UPSELL_SELECTION: self._post_order_step,
            StepTag.ERROR_RECOVERY: self._recovery_step,
            StepTag.OUT_OF_STOCK: self._recovery_step,
            StepTag.PRODUCT_UNAVAILABLE: self._recovery_step,
        }

    # Public entry points

    def create_session(self, session_id: str, product_id: str | None = None) -> ConversationSession:
        return self.registry.create_session(session_id, product_id)

    async def dispose_session(self, session_id: str) -> bool:
        async with self.registry.lock_for(session_id):
            return await self.registry.dispose_session(session_id)

    async def handle_turn(self, request: TurnRequest) -> ChatReply:
        async with self.registry.lock_for(request.session_id):
            try:
                reply = await self._process(request)
            except Exception:  # noqa: BLE001
                logger.exception(
                    "Turn failed for session %s (product=%s, step=%s)",
                    request.session_id,
                    request.product_id,
                    request.current_step.value if request.current_step else None,
                )
                reply = await self._recover_from_failure(request.session_id)

        await self.typing_delay.pause(reply)
        return reply

    async def confirm_payment(self, session_id: str, succeeded: bool, reference: str | None = None) -> ChatReply:
        """Apply the hosted card widget's outcome to a session awaiting confirmation."""

        async with self.registry.lock_for(session_id):
            try:
                session = await self.registry.get_or_create(session_id)
                reply = await self._apply_payment_outcome(session, succeeded, reference)
                session.step = reply.next_step
                turn = session.record("assistant", reply.message, step=reply.next_step.value)
                await self.registry.persist(session, [turn])
                self._record_turn("payment_confirmation", reply.next_step)
            except Exception:  # noqa: BLE001
                logger.exception("Payment confirmation failed for session %s", session_id)
                reply = await self._recover_from_failure(session_id)
        return reply

    # Turn processing

    async def _process(self, request: TurnRequest) -> ChatReply:
        session = await self.registry.get_or_create(request.session_id, request.product_id)
        if request.product_id and not session.product_id:
            session.product_id = request.product_id
        if not session.history:
            await self._rehydrate(session, request)

        message = request.message.strip()
        analysis = self.analyzer.analyze(message, session.history)
        if message:
            apply_profile_delta(session.profile, analysis.delta)
        user_turn = session.record("user", message)

        if not session.product_id:
            reply = self._unavailable_reply(session.step)
        elif not message:
            reply = await self._reprompt(session, session.step)
        else:
            reply = await self._dispatch(session, request, message, analysis)

        session.step = reply.next_step
        if session.draft is not None and reply.metadata.order_data is None:
            reply.metadata.order_data = session.draft.to_payload()
        assistant_turn = session.record("assistant", reply.message, step=reply.next_step.value)
        await self.registry.persist(session, [user_turn, assistant_turn])
        self._record_turn(analysis.intent.value, reply.next_step)
        return reply

    async def _rehydrate(self, session: ConversationSession, request: TurnRequest) -> None:
        """Adopt client-held state for a session this process has never seen."""

        if request.current_step is None or request.current_step is StepTag.INITIAL:
            return
        session.step = request.current_step
        if request.order_data and session.draft is None:
            session.draft = draft_from_order_data(request.order_data)
        if session.step in EXPRESS_STEPS and session.draft is None:
            session.step = StepTag.INITIAL
        logger.info("Rehydrated session %s at step %s", session.session_id, session.step.value)

    async def _dispatch(
        self,
        session: ConversationSession,
        request: TurnRequest,
        message: str,
        analysis: IntentAnalysis,
    ) -> ChatReply:
        if matches_choice(message, templates.CHOICE_START_OVER):
            return await self._start_over(session)
        if matches_choice(message, templates.CHOICE_SUPPORT, templates.CHOICE_ADVISOR):
            return self._support_reply(session)
        if matches_choice(message, templates.CHOICE_RETRY):
            step = session.resume_step or session.step
            session.resume_step = None
            return await self._reprompt(session, step)

        handler = self._handlers[session.step]
        return await handler(session, request, message, analysis)

    async def _recover_from_failure(self, session_id: str) -> ChatReply:
        self._record_fallback("turn_guard")
        session = self.registry.get(session_id)
        if session is not None:
            if session.step is not StepTag.ERROR_RECOVERY:
                session.resume_step = session.step
            session.step = StepTag.ERROR_RECOVERY
            await self.registry.persist(session, [])
        return ChatReply(
            message=templates.ERROR_MESSAGE,
            choices=list(templates.ERROR_CHOICES),
            next_step=StepTag.ERROR_RECOVERY,
            metadata=ReplyMetadata(whatsapp_url=templates.whatsapp_url(self.whatsapp_number)),
        )

    # Free conversation

    async def _free_conversation(
        self,
        session: ConversationSession,
        request: TurnRequest,
        message: str,
        analysis: IntentAnalysis,
    ) -> ChatReply:
        product = await self._product(session)
        if product is None:
            return self._unavailable_reply(StepTag.PRODUCT_UNAVAILABLE)

        if matches_choice(message, templates.CHOICE_BUY_NOW, templates.CHOICE_BUY_IT, "Je veux l'acheter"):
            return await self._start_express(session, product)
        if matches_choice(message, templates.CHOICE_ASK, templates.CHOICE_OTHER_QUESTION):
            return ChatReply(
                message=templates.ASK_QUESTION,
                choices=[templates.CHOICE_RULES, templates.CHOICE_BUY_IT],
                next_step=StepTag.QUESTION_MODE,
            )
        if matches_choice(message, templates.CHOICE_REVIEWS):
            return await self.pipeline.reviews_reply(product)
        if matches_choice(message, templates.CHOICE_RULES):
            return await self.pipeline.rules_reply(product)
        if session.step is StepTag.INITIAL and GREETING.search(normalize(message)) and len(message.split()) <= 3:
            return self._welcome(product)

        if analysis.intent is Intent.PURCHASE and not request.force_ai:
            return await self._start_express(session, product)

        reply = await self.pipeline.respond(
            ResponseContext(
                session=session,
                product=product,
                message=message,
                analysis=analysis,
                force_ai=request.force_ai,
            )
        )
        if reply.next_step is StepTag.EXPRESS_QUANTITY:
            return await self._start_express(session, product)
        return reply

    def _welcome(self, product: Product) -> ChatReply:
        return ChatReply(
            message=templates.welcome(product.name),
            choices=list(templates.WELCOME_CHOICES),
            next_step=StepTag.INITIAL,
        )

    async def _start_express(self, session: ConversationSession, product: Product) -> ChatReply:
        if not product.is_active:
            return self._unavailable_reply(StepTag.PRODUCT_UNAVAILABLE)
        if not product.in_stock:
            return ChatReply(
                message=templates.out_of_stock(product.name),
                choices=list(templates.OUT_OF_STOCK_CHOICES),
                next_step=StepTag.OUT_OF_STOCK,
                metadata=ReplyMetadata(flags={"outOfStock": True, "productId": product.id}),
            )

        session.product_id = product.id
        session.resume_step = None
        session.draft = OrderDraft(
            product_id=product.id,
            product_name=product.name,
            unit_price=product.price,
        )
        return ChatReply(
            message=templates.ask_quantity(product.name, product.price),
            choices=list(templates.QUANTITY_CHOICES),
            next_step=StepTag.EXPRESS_QUANTITY,
            actions=ReplyActions(show_cart=True),
        )

    # Express flow

    async def _quantity_step(
        self,
        session: ConversationSession,
        request: TurnRequest,
        message: str,
        analysis: IntentAnalysis,
    ) -> ChatReply:
        draft = session.draft
        if draft is None:
            return await self._restart_express(session)

        product = await self._product(session)
        if product is not None and not product.in_stock:
            return await self._start_express(session, product)
        max_quantity = min(product.stock_quantity, MAX_ORDER_QUANTITY) if product else MAX_ORDER_QUANTITY

        if matches_choice(message, templates.CHOICE_CUSTOM_QUANTITY):
            return ChatReply(
                message=templates.ask_custom_quantity(max_quantity),
                choices=[],
                next_step=StepTag.EXPRESS_CUSTOM_QUANTITY,
            )

        quantity = parse_quantity(message)
        if quantity is None or not 1 <= quantity <= max_quantity:
            return ChatReply(
                message=templates.invalid_quantity(max_quantity),
                choices=list(templates.QUANTITY_CHOICES) if session.step is StepTag.EXPRESS_QUANTITY else [],
                next_step=session.step,
            )

        draft.update(quantity=quantity)
        return ChatReply(
            message=templates.ask_name(quantity, draft.subtotal, draft.discount),
            choices=[],
            next_step=StepTag.EXPRESS_CONTACT,
        )

    async def _contact_step(
        self,
        session: ConversationSession,
        request: TurnRequest,
        message: str,
        analysis: IntentAnalysis,
    ) -> ChatReply:
        draft = session.draft
        if draft is None:
            return await self._restart_express(session)

        name = parse_full_name(message)
        if name is None:
            return ChatReply(message=templates.INVALID_NAME, choices=[], next_step=StepTag.EXPRESS_CONTACT)

        first_name, last_name = name
        draft.update(first_name=first_name, last_name=last_name)
        return ChatReply(message=templates.ask_phone(first_name), choices=[], next_step=StepTag.EXPRESS_PHONE)

    async def _phone_step(
        self,
        session: ConversationSession,
        request: TurnRequest,
        message: str,
        analysis: IntentAnalysis,
    ) -> ChatReply:
        draft = session.draft
        if draft is None:
            return await self._restart_express(session)

        phone = parse_phone(message)
        if phone is None:
            return ChatReply(message=templates.INVALID_PHONE, choices=[], next_step=StepTag.EXPRESS_PHONE)

        draft.update(phone=phone.e164)
        customer = await self._known_customer(phone.e164)
        if customer is not None and customer.address:
            draft.update(address=customer.address, city=customer.city, known_address=True)
            return ChatReply(
                message=templates.confirm_known_address(draft.first_name, customer.address, customer.city),
                choices=[templates.CHOICE_KEEP_ADDRESS, templates.CHOICE_CHANGE_ADDRESS],
                next_step=StepTag.EXPRESS_ADDRESS,
            )

        draft.update(address="", city="", known_address=False)
        return ChatReply(message=templates.ASK_ADDRESS, choices=[], next_step=StepTag.EXPRESS_ADDRESS)

    async def _known_customer(self, phone: str) -> Customer | None:
        try:
            return await self.catalogue.find_customer(phone)
        except StoreUnavailableError:
            logger.warning("Customer lookup unavailable for %s", phone, exc_info=True)
            return None

    async def _address_step(
        self,
        session: ConversationSession,
        request: TurnRequest,
        message: str,
        analysis: IntentAnalysis,
    ) -> ChatReply:
        draft = session.draft
        if draft is None:
            return await self._restart_express(session)

        kind = classify_address_reply(message)

        if kind is AddressReply.CONFIRM and draft.known_address and draft.address:
            draft.update(delivery_cost=delivery_cost(draft.city))
            return self._ask_payment(draft)

        if kind is AddressReply.CHANGE:
            draft.update(address="", city="", known_address=False)
            return ChatReply(message=templates.ASK_NEW_ADDRESS, choices=[], next_step=StepTag.EXPRESS_ADDRESS)

        if kind is AddressReply.NEW_ADDRESS:
            parsed = split_address(message, self.default_city)
            if parsed is None:
                return ChatReply(message=templates.INVALID_ADDRESS, choices=[], next_step=StepTag.EXPRESS_ADDRESS)
            address, city = parsed
            draft.update(address=address, city=city, delivery_cost=delivery_cost(city), known_address=False)
            return self._ask_payment(draft)

        if draft.known_address:
            return ChatReply(
                message=templates.ADDRESS_UNCLEAR,
                choices=[templates.CHOICE_KEEP_ADDRESS, templates.CHOICE_CHANGE_ADDRESS],
                next_step=StepTag.EXPRESS_ADDRESS,
            )
        return ChatReply(message=templates.ASK_ADDRESS, choices=[], next_step=StepTag.EXPRESS_ADDRESS)

    def _ask_payment(self, draft: OrderDraft) -> ChatReply:
        return ChatReply(
            message=templates.ask_payment(draft.address, draft.city, draft.delivery_cost, draft.total),
            choices=list(templates.PAYMENT_CHOICES),
            next_step=StepTag.EXPRESS_PAYMENT,
        )

    async def _payment_step(
        self,
        session: ConversationSession,
        request: TurnRequest,
        message: str,
        analysis: IntentAnalysis,
    ) -> ChatReply:
        draft = session.draft
        if draft is None:
            return await self._restart_express(session)

        provider = parse_provider(message)
        if provider is None:
            return ChatReply(
                message=templates.INVALID_PAYMENT,
                choices=list(templates.PAYMENT_CHOICES),
                next_step=StepTag.EXPRESS_PAYMENT,
            )

        draft.update(payment_provider=provider)
        instruction = self.payments.handoff(provider, draft, order_ref=draft.order_ref or None)
        metadata = ReplyMetadata(payment=instruction.to_payload())

        if not instruction.completes_order:
            draft.update(order_ref=instruction.order_ref)
            return ChatReply(
                message=instruction.message,
                choices=[templates.CHOICE_WAVE, templates.CHOICE_CASH, templates.CHOICE_SUPPORT],
                next_step=StepTag.CONFIRMATION,
                actions=ReplyActions(show_payment=True),
                metadata=metadata,
            )

        return await self._finalize(session, draft, instruction.order_ref, instruction.message, metadata)

    async def _confirmation_step(
        self,
        session: ConversationSession,
        request: TurnRequest,
        message: str,
        analysis: IntentAnalysis,
    ) -> ChatReply:
        draft = session.draft
        if draft is None:
            return await self._restart_express(session)

        provider = parse_provider(message)
        if provider is not None and provider is not PaymentProvider.CARD:
            return await self._payment_step(session, request, message, analysis)

        instruction = self.payments.handoff(PaymentProvider.CARD, draft, order_ref=draft.order_ref or None)
        return ChatReply(
            message=templates.AWAITING_CARD,
            choices=[templates.CHOICE_WAVE, templates.CHOICE_CASH, templates.CHOICE_SUPPORT],
            next_step=StepTag.CONFIRMATION,
            actions=ReplyActions(show_payment=True),
            metadata=ReplyMetadata(payment=instruction.to_payload()),
        )

    async def _apply_payment_outcome(
        self,
        session: ConversationSession,
        succeeded: bool,
        reference: str | None,
    ) -> ChatReply:
        draft = session.draft
        if session.step is not StepTag.CONFIRMATION or draft is None:
            logger.warning("Payment outcome for session %s ignored at step %s", session.session_id, session.step.value)
            return ChatReply(
                message="Aucun paiement n'est en attente pour cette conversation.",
                choices=[],
                next_step=session.step,
                metadata=ReplyMetadata(flags={"ignoredPaymentOutcome": True}),
            )

        if not succeeded:
            return ChatReply(
                message=templates.card_failed(),
                choices=list(templates.PAYMENT_CHOICES),
                next_step=StepTag.EXPRESS_PAYMENT,
                metadata=ReplyMetadata(payment={"provider": PaymentProvider.CARD.value, "status": "failed"}),
            )

        order_ref = draft.order_ref or reference or ""
        payment: dict[str, Any] = {"provider": PaymentProvider.CARD.value, "status": "succeeded", "orderRef": order_ref}
        if reference:
            payment["reference"] = reference
        return await self._finalize(
            session,
            draft,
            order_ref,
            templates.card_confirmed(order_ref, draft.total),
            ReplyMetadata(payment=payment),
        )

    async def _finalize(
        self,
        session: ConversationSession,
        draft: OrderDraft,
        order_ref: str,
        lead_message: str,
        metadata: ReplyMetadata,
    ) -> ChatReply:
        draft.finalize(order_ref)
        metadata.order_data = draft.to_payload()
        session.last_order = draft
        session.draft = None
        await self._remember_customer(draft)
        logger.info("Order %s finalized for session %s (%s)", order_ref, session.session_id, draft.payment_provider)

        return await self.recommendations.upsell_reply(
            lead_message,
            draft.product_id,
            session.profile,
            next_step=StepTag.ORDER_FINALIZED,
            metadata=metadata,
        )

    async def _remember_customer(self, draft: OrderDraft) -> None:
        customer = Customer(
            phone=draft.phone,
            first_name=draft.first_name,
            last_name=draft.last_name,
            city=draft.city,
            address=draft.address,
        )
        try:
            await self.catalogue.remember_customer(customer)
        except StoreUnavailableError:
            logger.warning("Could not store customer %s", draft.phone, exc_info=True)

    # After the order

    async def _post_order_step(
        self,
        session: ConversationSession,
        request: TurnRequest,
        message: str,
        analysis: IntentAnalysis,
    ) -> ChatReply:
        order = session.last_order
        choice = normalize_choice(message)
        add_prefix = normalize_choice(templates.ADD_PRODUCT_PREFIX)

        if choice.startswith(add_prefix + " "):
            wanted = choice[len(add_prefix):].strip()
            current_id = order.product_id if order else session.product_id
            for candidate in await self.catalogue.recommendation_candidates(current_id):
                if normalize_choice(candidate.name) == wanted:
                    return await self._start_express(session, candidate)

        if matches_choice(message, templates.CHOICE_TRACK_ORDER) and order is not None:
            return ChatReply(
                message=templates.track_order(order.order_ref),
                choices=[templates.CHOICE_OTHER_GAMES, templates.CHOICE_FINISH],
                next_step=session.step,
                actions=ReplyActions(redirect_whatsapp=True),
                metadata=ReplyMetadata(
                    whatsapp_url=templates.whatsapp_url(self.whatsapp_number, f"Suivi de ma commande {order.order_ref}"),
                ),
            )
        if matches_choice(message, templates.CHOICE_FINISH):
            return ChatReply(
                message=templates.FAREWELL,
                choices=[templates.CHOICE_OTHER_GAMES, templates.CHOICE_TRACK_ORDER],
                next_step=StepTag.ORDER_FINALIZED,
            )
        if matches_choice(message, templates.CHOICE_OTHER_GAMES):
            return await self._other_games(session)

        return await self._free_conversation(session, request, message, analysis)

    async def _other_games(self, session: ConversationSession) -> ChatReply:
        current_id = session.last_order.product_id if session.last_order else session.product_id
        reply = await self.recommendations.upsell_reply(
            "Voici d'autres jeux qui pourraient vous plaire 🎁",
            current_id,
            session.profile,
            next_step=StepTag.UPSELL_SELECTION,
        )
        if not reply.metadata.recommendations:
            reply.message = templates.NO_RECOMMENDATIONS
            reply.choices = [templates.CHOICE_ASK, templates.CHOICE_SUPPORT]
        return reply

    # Recovery

    async def _recovery_step(
        self,
        session: ConversationSession,
        request: TurnRequest,
        message: str,
        analysis: IntentAnalysis,
    ) -> ChatReply:
        if matches_choice(message, templates.CHOICE_NOTIFY):
            return ChatReply(
                message=templates.NOTIFY_CONFIRMED,
                choices=[templates.CHOICE_OTHER_GAMES, templates.CHOICE_ASK],
                next_step=StepTag.OUT_OF_STOCK,
                actions=ReplyActions(redirect_whatsapp=True),
                metadata=ReplyMetadata(
                    whatsapp_url=templates.whatsapp_url(
                        self.whatsapp_number,
                        f"Prévenez-moi du retour en stock ({session.product_id})",
                    ),
                ),
            )
        if matches_choice(message, templates.CHOICE_OTHER_GAMES):
            return await self._other_games(session)

        session.resume_step = None
        return await self._free_conversation(session, request, message, analysis)

    async def _start_over(self, session: ConversationSession) -> ChatReply:
        session.draft = None
        session.resume_step = None
        product = await self._product(session)
        if product is None:
            return self._unavailable_reply(StepTag.PRODUCT_UNAVAILABLE)
        return ChatReply(
            message=templates.restart(product.name),
            choices=list(templates.WELCOME_CHOICES),
            next_step=StepTag.INITIAL,
        )

    async def _restart_express(self, session: ConversationSession) -> ChatReply:
        product = await self._product(session)
        if product is None:
            return self._unavailable_reply(StepTag.PRODUCT_UNAVAILABLE)
        return await self._start_express(session, product)

    async def _reprompt(self, session: ConversationSession, step: StepTag) -> ChatReply:
        """Repeat the question of ``step`` without changing any collected data."""

        draft = session.draft
        if step in EXPRESS_STEPS and draft is None:
            step = StepTag.INITIAL

        if step is StepTag.EXPRESS_QUANTITY and draft is not None:
            return ChatReply(
                message=templates.ask_quantity(draft.product_name, draft.unit_price),
                choices=list(templates.QUANTITY_CHOICES),
                next_step=step,
            )
        if step is StepTag.EXPRESS_CUSTOM_QUANTITY:
            return ChatReply(message=templates.ask_custom_quantity(MAX_ORDER_QUANTITY), choices=[], next_step=step)
        if step is StepTag.EXPRESS_CONTACT and draft is not None:
            return ChatReply(
                message=templates.ask_name(draft.quantity, draft.subtotal, draft.discount),
                choices=[],
                next_step=step,
            )
        if step is StepTag.EXPRESS_PHONE and draft is not None:
            return ChatReply(message=templates.ask_phone(draft.first_name), choices=[], next_step=step)
        if step is StepTag.EXPRESS_ADDRESS and draft is not None:
            if draft.known_address:
                return ChatReply(
                    message=templates.confirm_known_address(draft.first_name, draft.address, draft.city),
                    choices=[templates.CHOICE_KEEP_ADDRESS, templates.CHOICE_CHANGE_ADDRESS],
                    next_step=step,
                )
            return ChatReply(message=templates.ASK_ADDRESS, choices=[], next_step=step)
        if step is StepTag.EXPRESS_PAYMENT and draft is not None:
            return self._ask_payment(draft)
        if step is StepTag.CONFIRMATION and draft is not None:
            return ChatReply(
                message=templates.AWAITING_CARD,
                choices=[templates.CHOICE_WAVE, templates.CHOICE_CASH, templates.CHOICE_SUPPORT],
                next_step=step,
                actions=ReplyActions(show_payment=True),
            )

        product = await self._product(session)
        if product is None:
            return self._unavailable_reply(StepTag.PRODUCT_UNAVAILABLE)
        return self._welcome(product)

    def _support_reply(self, session: ConversationSession) -> ChatReply:
        context = f"Bonjour, j'ai besoin d'aide (produit {session.product_id or 'inconnu'})."
        next_step = StepTag.INITIAL if session.step is StepTag.ERROR_RECOVERY else session.step
        return ChatReply(
            message=templates.SUPPORT_REDIRECT,
            choices=[templates.CHOICE_START_OVER],
            next_step=next_step,
            actions=ReplyActions(redirect_whatsapp=True),
            metadata=ReplyMetadata(whatsapp_url=templates.whatsapp_url(self.whatsapp_number, context)),
        )

    def _unavailable_reply(self, next_step: StepTag) -> ChatReply:
        return ChatReply(
            message=templates.PRODUCT_UNAVAILABLE,
            choices=[templates.CHOICE_OTHER_GAMES, templates.CHOICE_SUPPORT],
            next_step=next_step,
        )

    async def _product(self, session: ConversationSession) -> Product | None:
        return await self.catalogue.find_product(session.product_id)

    def _record_turn(self, intent: str, next_step: StepTag) -> None:
        if self.metrics is not None:
            self.metrics.record_turn(intent, next_step.value)

    def _record_fallback(self, kind: str) -> None:
        if self.metrics is not None:
            self.metrics.record_fallback(kind)


def draft_from_order_data(data: dict[str, Any]) -> OrderDraft | None:
    """Build a draft from the camelCase ``orderData`` a client echoes back."""

    try:
        product_id = str(data["productId"])
        unit_price = int(data["unitPrice"])
        quantity = max(1, int(data.get("quantity") or 1))
        delivery = int(data.get("deliveryCost") or 0)
    except (KeyError, TypeError, ValueError):
        return None

    provider = data.get("paymentMethod")
    try:
        payment_provider = PaymentProvider(provider) if provider else None
    except (TypeError, ValueError):
        payment_provider = None

    return OrderDraft(
        product_id=product_id,
        product_name=str(data.get("productName") or ""),
        unit_price=unit_price,
        quantity=quantity,
        first_name=str(data.get("firstName") or ""),
        last_name=str(data.get("lastName") or ""),
        phone=str(data.get("phone") or ""),
        city=str(data.get("city") or ""),
        address=str(data.get("address") or ""),
        delivery_cost=delivery,
        payment_provider=payment_provider,
        order_ref=str(data.get("orderRef") or ""),
    )
