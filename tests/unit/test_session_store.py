import asyncio
from datetime import timedelta

from rose.sessions.models import ConversationSession, MessageTurn, OrderDraft, PaymentProvider, StepTag, utcnow
from rose.sessions.registry import SessionRegistry


def test_append_and_fetch(session_store):
    for content in ("Bonjour", "Bienvenue !", "Je veux commander"):
        session_store.append_turn(MessageTurn(session_id="sess-1", role="user", content=content))

    turns = session_store.fetch_recent_turns("sess-1", limit=2)

    assert [turn.content for turn in turns] == ["Bienvenue !", "Je veux commander"]


def test_snapshot_round_trip(session_store):
    session = ConversationSession(session_id="sess-2", product_id="couples", step=StepTag.ERROR_RECOVERY)
    session.resume_step = StepTag.EXPRESS_ADDRESS
    session.draft = OrderDraft(
        product_id="couples",
        product_name="Pour les Couples",
        unit_price=14000,
        quantity=2,
        phone="771234567",
        payment_provider=PaymentProvider.WALLET,
    )
    session.profile.interests.append("couple")
    session_store.save_session(session)

    loaded = session_store.load_session("sess-2")

    assert loaded.step is StepTag.ERROR_RECOVERY
    assert loaded.resume_step is StepTag.EXPRESS_ADDRESS
    assert loaded.draft.total == 25200
    assert loaded.draft.payment_provider is PaymentProvider.WALLET
    assert loaded.profile.interests == ["couple"]
    assert loaded.last_order is None


def test_delete_removes_snapshot_and_transcript(session_store):
    session_store.save_session(ConversationSession(session_id="sess-3"))
    session_store.append_turn(MessageTurn(session_id="sess-3", role="user", content="Salut"))

    session_store.delete("sess-3")

    assert session_store.load_session("sess-3") is None
    assert session_store.fetch_recent_turns("sess-3") == []
    assert list(session_store.iter_sessions()) == []


def test_registry_recovers_persisted_sessions(session_store):
    first = SessionRegistry(session_store)
    session = asyncio.run(first.get_or_create("sess-4", "couples"))
    session.step = StepTag.EXPRESS_PHONE
    turn = session.record("user", "aminata diallo")
    asyncio.run(first.persist(session, [turn]))

    recovered = asyncio.run(SessionRegistry(session_store).get_or_create("sess-4"))

    assert recovered.step is StepTag.EXPRESS_PHONE
    assert [item.content for item in recovered.history] == ["aminata diallo"]


def test_registry_ignores_expired_snapshots(session_store):
    stale = ConversationSession(session_id="sess-5", product_id="couples", step=StepTag.EXPRESS_PAYMENT)
    stale.last_activity = utcnow() - timedelta(days=2)
    session_store.save_session(stale)

    session = asyncio.run(SessionRegistry(session_store).get_or_create("sess-5", "couples"))

    assert session.step is StepTag.INITIAL


def test_purge_skips_sessions_mid_turn(fake_clock):
    registry = SessionRegistry(max_age_seconds=60, clock=fake_clock)

    async def scenario():
        await registry.get_or_create("idle")
        await registry.get_or_create("busy")
        async with registry.lock_for("busy"):
            fake_clock.advance(120)
            return registry.purge_inactive()

    assert asyncio.run(scenario()) == ["idle"]
    assert "busy" in registry
    assert "idle" not in registry


def test_persist_skips_disposed_sessions(session_store):
    registry = SessionRegistry(session_store)

    async def scenario():
        session = await registry.get_or_create("sess-7", "couples")
        await registry.dispose_session("sess-7")
        await registry.persist(session, [session.record("user", "Bonjour")])

    asyncio.run(scenario())

    assert session_store.load_session("sess-7") is None
    assert session_store.fetch_recent_turns("sess-7") == []


def test_dispose_session(session_store):
    registry = SessionRegistry(session_store)
    session = asyncio.run(registry.get_or_create("sess-6"))
    asyncio.run(registry.persist(session, []))

    assert asyncio.run(registry.dispose_session("sess-6")) is True
    assert asyncio.run(registry.dispose_session("sess-6")) is False
    assert session_store.load_session("sess-6") is None
