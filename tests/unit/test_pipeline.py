import asyncio

from rose.core.errors import CompletionError
from rose.engine import templates
from rose.engine.analyzer import KeywordIntentAnalyzer
from rose.engine.pipeline import ResponseContext
from rose.engine.types import Intent
from rose.sessions.models import ConversationSession, StepTag


def make_context(catalogue, message, session=None, force_ai=False):
    product = asyncio.run(catalogue.get_product("couples"))
    session = session or ConversationSession(session_id="sess-1", product_id="couples")
    return ResponseContext(
        session=session,
        product=product,
        message=message,
        analysis=KeywordIntentAnalyzer().analyze(message, session.history),
        force_ai=force_ai,
    )


def test_question_answered_from_knowledge_base(catalogue, build_pipeline):
    pipeline = build_pipeline()

    reply = asyncio.run(pipeline.respond(make_context(catalogue, "Combien de temps dure une partie ?")))

    assert reply.message == "Une partie dure 30 à 60 minutes, à votre rythme."
    assert reply.next_step is StepTag.QUESTION_MODE
    assert reply.metadata.intent == Intent.QUESTION.value


def test_llm_reply_used_for_questions(catalogue, build_pipeline, scripted_client):
    client = scripted_client("openai", ["Le jeu contient 150 cartes."])
    pipeline = build_pipeline([client])

    reply = asyncio.run(pipeline.respond(make_context(catalogue, "Comment ça marche ?")))

    assert reply.message == "Le jeu contient 150 cartes."
    assert reply.metadata.flags == {"source": "openai"}
    assert reply.choices == templates.QUESTION_FOLLOW_UP_CHOICES
    system_prompt, messages = client.calls[0]
    assert "Pour les Couples" in system_prompt
    assert "14 000 FCFA" in system_prompt
    assert messages[-1].role == "user"
    assert messages[-1].content == "Comment ça marche ?"


def test_secondary_provider_takes_over(catalogue, build_pipeline, scripted_client, metrics):
    primary = scripted_client("openai", [CompletionError("timeout")])
    secondary = scripted_client("anthropic", ["Réponse de secours."])
    pipeline = build_pipeline([primary, secondary])

    reply = asyncio.run(pipeline.respond(make_context(catalogue, "Comment ça marche ?")))

    assert reply.message == "Réponse de secours."
    assert metrics.snapshot().fallbacks == {"llm_openai": 1}


def test_all_providers_failing_falls_back_to_rules(catalogue, build_pipeline, scripted_client, metrics):
    primary = scripted_client("openai", [CompletionError("down")])
    secondary = scripted_client("anthropic", [RuntimeError("unexpected")])
    pipeline = build_pipeline([primary, secondary])

    reply = asyncio.run(pipeline.respond(make_context(catalogue, "blorbledygook")))

    assert reply.choices == templates.FALLBACK_CHOICES
    assert reply.metadata.whatsapp_url.startswith("https://wa.me/221781362728")
    assert metrics.snapshot().fallbacks == {"llm_openai": 1, "llm_anthropic": 1}


def test_rules_are_used_for_non_question_intents(catalogue, build_pipeline, scripted_client):
    client = scripted_client("openai", ["ne devrait pas servir"])
    pipeline = build_pipeline([client])

    reply = asyncio.run(pipeline.respond(make_context(catalogue, "C'est trop cher")))

    assert client.calls == []
    assert "-20%" in reply.message
    assert reply.metadata.intent == "objection"


def test_force_ai_routes_any_intent_to_the_model(catalogue, build_pipeline, scripted_client):
    client = scripted_client("openai", ["Avec plaisir !"])
    pipeline = build_pipeline([client])

    reply = asyncio.run(pipeline.respond(make_context(catalogue, "C'est trop cher", force_ai=True)))

    assert reply.message == "Avec plaisir !"


def test_structured_reply_is_validated(catalogue, build_pipeline, scripted_client):
    client = scripted_client(
        "openai",
        ['```json\n{"message": "On commande ?", "choices": ["Oui"], "nextStep": "express_quantity"}\n```'],
    )
    pipeline = build_pipeline([client], structured=True)

    reply = asyncio.run(pipeline.respond(make_context(catalogue, "Comment ça marche ?")))

    assert reply.message == "On commande ?"
    assert reply.choices == ["Oui"]
    assert reply.next_step is StepTag.EXPRESS_QUANTITY


def test_malformed_structured_reply_falls_back(catalogue, build_pipeline, scripted_client, metrics):
    client = scripted_client("openai", ['{"message": "", "nextStep": "confirmation"}'])
    pipeline = build_pipeline([client], structured=True)

    reply = asyncio.run(pipeline.respond(make_context(catalogue, "Comment ça marche ?")))

    assert reply.next_step is StepTag.QUESTION_MODE
    assert reply.message
    assert metrics.snapshot().fallbacks == {"llm_parse": 1}


def test_respond_never_raises(catalogue, build_pipeline, metrics, monkeypatch):
    pipeline = build_pipeline()

    async def broken_testimonials(product_id, limit=5):
        raise RuntimeError("boom")

    monkeypatch.setattr(catalogue, "testimonials", broken_testimonials)

    reply = asyncio.run(pipeline.respond(make_context(catalogue, "Je ne suis pas sûr")))

    assert reply.choices == templates.FALLBACK_CHOICES
    assert reply.metadata.intent == "hesitation"
    assert metrics.snapshot().fallbacks == {"pipeline": 1}


def test_conversation_starts_with_a_user_turn(catalogue, build_pipeline, scripted_client):
    client = scripted_client("openai", ["ok"])
    pipeline = build_pipeline([client])
    session = ConversationSession(session_id="sess-2", product_id="couples")
    session.record("assistant", "Bienvenue !")
    session.record("user", "Salut")
    session.record("assistant", "Que puis-je faire ?")

    asyncio.run(pipeline.respond(make_context(catalogue, "Comment ça marche ?", session=session)))

    _, messages = client.calls[0]
    assert [message.role for message in messages] == ["user", "assistant", "user"]


def test_reviews_reply_lists_testimonials(catalogue, build_pipeline):
    pipeline = build_pipeline()
    product = asyncio.run(catalogue.get_product("couples"))

    reply = asyncio.run(pipeline.reviews_reply(product))

    assert reply.actions.show_testimonials
    assert "Aminata D., Dakar" in reply.message
