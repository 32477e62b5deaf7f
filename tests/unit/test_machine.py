import asyncio

import pytest

from rose.engine import templates
from rose.engine.types import TurnRequest
from rose.sessions.models import StepTag

ADDRESS_STEPS = ["⚡ Commander rapidement", "1 exemplaire", "Aminata Diallo", "77 123 45 67"]


def say(machine, session_id, message, product_id="couples", **kwargs):
    request = TurnRequest(session_id=session_id, message=message, product_id=product_id, **kwargs)
    return asyncio.run(machine.handle_turn(request))


def converse(machine, session_id, messages, product_id="couples"):
    return [say(machine, session_id, message, product_id) for message in messages]


def test_express_order_with_wave(machine, express_order_script, metrics):
    product_id = express_order_script["product_id"]
    replies = []
    for turn in express_order_script["turns"]:
        reply = say(machine, "sess-wave", turn["message"], product_id)
        assert reply.next_step.value == turn["next_step"], turn["message"]
        replies.append(reply)

    final = replies[-1]
    order = final.metadata.order_data
    assert order["quantity"] == 3
    assert order["subtotal"] == 42000
    assert order["discount"] == 6300
    assert order["deliveryCost"] == 0
    assert order["totalAmount"] == 35700
    assert order["phone"] == "+221771234567"
    assert order["finalized"] is True
    assert order["orderRef"].startswith("VOSC-")
    assert final.metadata.payment["paymentUrl"] == "https://pay.wave.com/m/M_OfAgT8X_IT6P/c/sn/?amount=35700"
    assert final.actions.trigger_upsell
    assert templates.CHOICE_TRACK_ORDER in final.choices
    assert replies[1].actions.show_cart
    assert metrics.snapshot().total_turns == len(express_order_script["turns"])


def test_returning_customer_keeps_address(machine, catalogue_store):
    converse(machine, "sess-first", [*ADDRESS_STEPS, "Sacré-Coeur 3, Dakar", "🚚 Paiement à la livraison"])
    assert catalogue_store.find_customer("+221771234567").address == "Sacré-Coeur 3"

    replies = converse(machine, "sess-second", ADDRESS_STEPS)
    assert replies[-1].next_step is StepTag.EXPRESS_ADDRESS
    assert replies[-1].choices == [templates.CHOICE_KEEP_ADDRESS, templates.CHOICE_CHANGE_ADDRESS]

    reply = say(machine, "sess-second", "Oui, même adresse")

    assert reply.next_step is StepTag.EXPRESS_PAYMENT
    assert reply.metadata.order_data["address"] == "Sacré-Coeur 3"


def test_returning_customer_changes_address(machine):
    converse(machine, "sess-first", [*ADDRESS_STEPS, "Mermoz, Dakar", "📱 Wave"])
    converse(machine, "sess-second", ADDRESS_STEPS)

    changed = say(machine, "sess-second", "Changer d'adresse")
    assert changed.message == templates.ASK_NEW_ADDRESS

    reply = say(machine, "sess-second", "Quartier Escale, Thiès")
    assert reply.metadata.order_data["city"] == "Thiès"
    assert reply.metadata.order_data["deliveryCost"] == 3000


@pytest.mark.parametrize("message", ["peut-être", "oui"])
def test_unclear_address_reply_asks_again(machine, message):
    converse(machine, "sess-addr", ADDRESS_STEPS)

    reply = say(machine, "sess-addr", message)

    assert reply.next_step is StepTag.EXPRESS_ADDRESS
    assert reply.message == templates.ASK_ADDRESS
    assert reply.metadata.order_data["address"] == ""


def test_card_payment_waits_for_confirmation(machine):
    replies = converse(machine, "sess-card", [*ADDRESS_STEPS, "Mermoz, Dakar", "💳 Carte bancaire"])
    pending = replies[-1]

    assert pending.next_step is StepTag.CONFIRMATION
    assert pending.actions.show_payment
    assert pending.metadata.payment["settlementAmount"] == 2135
    assert pending.metadata.payment["settlementCurrency"] == "eur"

    confirmed = asyncio.run(machine.confirm_payment("sess-card", True, "pi_123"))

    assert confirmed.next_step is StepTag.ORDER_FINALIZED
    assert confirmed.metadata.payment["orderRef"] == pending.metadata.payment["orderRef"]
    assert confirmed.metadata.order_data["finalized"] is True


def test_failed_card_payment_returns_to_payment_choice(machine):
    converse(machine, "sess-card", [*ADDRESS_STEPS, "Mermoz, Dakar", "carte"])

    failed = asyncio.run(machine.confirm_payment("sess-card", False))
    assert failed.next_step is StepTag.EXPRESS_PAYMENT
    assert failed.choices == templates.PAYMENT_CHOICES

    reply = say(machine, "sess-card", "espèces")
    assert reply.next_step is StepTag.ORDER_FINALIZED
    assert reply.metadata.order_data["paymentMethod"] == "cash"


def test_payment_outcome_without_pending_payment_is_ignored(machine):
    say(machine, "sess-idle", "Bonjour")

    reply = asyncio.run(machine.confirm_payment("sess-idle", True))

    assert reply.next_step is StepTag.INITIAL
    assert reply.metadata.flags == {"ignoredPaymentOutcome": True}


def test_out_of_stock_offers_notification(machine):
    reply = say(machine, "sess-oos", "Je veux commander", product_id="collegues")

    assert reply.next_step is StepTag.OUT_OF_STOCK
    assert reply.metadata.flags == {"outOfStock": True, "productId": "collegues"}
    assert reply.choices == templates.OUT_OF_STOCK_CHOICES

    notified = say(machine, "sess-oos", templates.CHOICE_NOTIFY, product_id="collegues")
    assert notified.message == templates.NOTIFY_CONFIRMED
    assert notified.metadata.whatsapp_url.startswith("https://wa.me/221781362728?text=")


@pytest.mark.parametrize("product_id", ["ghost", "stvalentin"])
def test_unsellable_products(machine, product_id):
    reply = say(machine, "sess-gone", "⚡ Commander rapidement", product_id=product_id)

    assert reply.next_step is StepTag.PRODUCT_UNAVAILABLE
    assert reply.message == templates.PRODUCT_UNAVAILABLE


def test_missing_product_id(machine):
    reply = say(machine, "sess-none", "Bonjour", product_id=None)

    assert reply.message == templates.PRODUCT_UNAVAILABLE
    assert reply.next_step is StepTag.INITIAL


def test_empty_message_repeats_current_question(machine):
    converse(machine, "sess-empty", ["⚡ Commander rapidement", "2 exemplaires"])

    reply = say(machine, "sess-empty", "   ")

    assert reply.next_step is StepTag.EXPRESS_CONTACT
    assert "nom complet" in reply.message
    assert reply.metadata.order_data["quantity"] == 2


def test_quantity_is_bounded_by_stock(machine):
    say(machine, "sess-qty", "⚡ Commander rapidement", product_id="famille")

    reply = say(machine, "sess-qty", "5", product_id="famille")

    assert reply.next_step is StepTag.EXPRESS_QUANTITY
    assert reply.message == templates.invalid_quantity(3)


def test_failed_turn_can_be_retried(machine, metrics, monkeypatch):
    say(machine, "sess-err", "⚡ Commander rapidement")
    original = machine.analyzer.analyze

    def flaky_analyze(message, history=()):
        if message == "boom":
            raise RuntimeError("analyzer crashed")
        return original(message, history)

    monkeypatch.setattr(machine.analyzer, "analyze", flaky_analyze)

    failed = say(machine, "sess-err", "boom")
    assert failed.next_step is StepTag.ERROR_RECOVERY
    assert failed.choices == templates.ERROR_CHOICES
    assert metrics.snapshot().fallbacks == {"turn_guard": 1}

    resumed = say(machine, "sess-err", templates.CHOICE_RETRY)
    assert resumed.next_step is StepTag.EXPRESS_QUANTITY
    assert resumed.choices == templates.QUANTITY_CHOICES


def test_upsell_choice_starts_a_new_order(machine):
    replies = converse(machine, "sess-upsell", [*ADDRESS_STEPS, "Mermoz, Dakar", "📱 Wave"])
    assert "➕ Ajouter Pour les Familles" in replies[-1].choices

    reply = say(machine, "sess-upsell", "➕ Ajouter Pour les Familles")

    assert reply.next_step is StepTag.EXPRESS_QUANTITY
    assert reply.metadata.order_data["productId"] == "famille"


def test_client_state_rehydrates_unknown_session(build_machine):
    machine = build_machine(store=None)
    order_data = {
        "productId": "couples",
        "productName": "Pour les Couples",
        "unitPrice": 14000,
        "quantity": 2,
        "firstName": "Aminata",
        "lastName": "Diallo",
        "phone": "+221771234567",
    }

    reply = say(
        machine,
        "sess-client",
        "Mermoz, Dakar",
        current_step=StepTag.EXPRESS_ADDRESS,
        order_data=order_data,
    )

    assert reply.next_step is StepTag.EXPRESS_PAYMENT
    assert reply.metadata.order_data["totalAmount"] == 25200


def test_express_step_without_order_data_starts_over(build_machine):
    machine = build_machine(store=None)

    reply = say(machine, "sess-client", "Bonjour", current_step=StepTag.EXPRESS_PAYMENT)

    assert reply.next_step is StepTag.INITIAL
    assert reply.choices == templates.WELCOME_CHOICES


def test_replies_are_deterministic(build_machine, express_order_script):
    messages = [turn["message"] for turn in express_order_script["turns"][:-1]]

    first = converse(build_machine(store=None), "sess-a", messages)
    second = converse(build_machine(store=None), "sess-b", messages)

    assert [reply.to_payload() for reply in first] == [reply.to_payload() for reply in second]


@pytest.mark.parametrize(
    "message",
    ["Pas maintenant, merci", "Non, je ne veux pas acheter", "Où en est ma commande ?"],
)
def test_refusals_do_not_start_checkout(machine, message):
    reply = say(machine, "sess-refusal", message)

    assert reply.next_step is StepTag.QUESTION_MODE
    assert reply.metadata.order_data is None


def slow_product_lookup(machine, monkeypatch, delay=0.05):
    original = machine.catalogue.find_product

    async def find_product(product_id):
        await asyncio.sleep(delay)
        return await original(product_id)

    monkeypatch.setattr(machine.catalogue, "find_product", find_product)


def test_turns_of_one_session_run_in_arrival_order(machine, monkeypatch):
    slow_product_lookup(machine, monkeypatch)

    async def scenario():
        return await asyncio.gather(
            machine.handle_turn(TurnRequest(session_id="sess-order", message="⚡ Commander rapidement", product_id="couples")),
            machine.handle_turn(TurnRequest(session_id="sess-order", message="2", product_id="couples")),
        )

    first, second = asyncio.run(scenario())

    assert first.next_step is StepTag.EXPRESS_QUANTITY
    assert second.next_step is StepTag.EXPRESS_CONTACT
    assert second.metadata.order_data["quantity"] == 2


def test_dispose_waits_for_the_running_turn(machine, session_store, monkeypatch):
    slow_product_lookup(machine, monkeypatch)

    async def scenario():
        turn = asyncio.create_task(
            machine.handle_turn(TurnRequest(session_id="sess-dispose", message="⚡ Commander rapidement", product_id="couples"))
        )
        await asyncio.sleep(0.01)
        disposed = await machine.dispose_session("sess-dispose")
        reply = await turn
        return disposed, reply

    disposed, reply = asyncio.run(scenario())

    assert disposed is True
    assert reply.next_step is StepTag.EXPRESS_QUANTITY
    assert session_store.load_session("sess-dispose") is None
    assert "sess-dispose" not in machine.registry


@pytest.mark.parametrize(
    "order_data",
    [
        {"productId": "couples", "unitPrice": 14000, "quantity": "beaucoup"},
        {"productId": "couples", "unitPrice": 14000, "quantity": 2, "deliveryCost": "gratuit"},
    ],
)
def test_malformed_client_order_data_starts_over(build_machine, order_data):
    machine = build_machine(store=None)

    reply = say(machine, "sess-bad-data", "Bonjour", current_step=StepTag.EXPRESS_PAYMENT, order_data=order_data)

    assert reply.next_step is StepTag.INITIAL
    assert reply.choices == templates.WELCOME_CHOICES
