import asyncio

from rose.catalogue.models import Product
from rose.core.errors import StoreUnavailableError
from rose.engine import templates
from rose.engine.recommendations import RecommendationGenerator, priority_for, score_product
from rose.engine.types import Intent
from rose.sessions.models import PriceSensitivity, RelationshipContext, StepTag, UserProfile


class UnavailableCatalogue:
    async def recommendation_candidates(self, exclude_product_id, limit=10):
        raise StoreUnavailableError("catalogue offline")


def test_only_other_sellable_products_are_recommended(catalogue):
    generator = RecommendationGenerator(catalogue)

    results = asyncio.run(generator.recommend("couples", Intent.PURCHASE, UserProfile()))

    assert {item.product_id for item in results} == {"famille", "amis"}
    assert all(item.score == 0.5 and item.priority == "low" for item in results)


def test_profile_drives_ranking(catalogue):
    generator = RecommendationGenerator(catalogue)
    profile = UserProfile(relationship=RelationshipContext.FAMILY, price_sensitivity=PriceSensitivity.BUDGET)

    results = asyncio.run(generator.recommend("couples", Intent.INFORMATION, profile))

    top = results[0]
    assert top.product_id == "famille"
    assert top.score == 0.9
    assert top.priority == "high"
    assert "famille" in top.reason


def test_compare_at_price_is_reported_as_discount(catalogue):
    generator = RecommendationGenerator(catalogue)

    results = asyncio.run(generator.recommend("couples", None, UserProfile()))
    amis = next(item for item in results if item.product_id == "amis")

    assert amis.price == 16000
    assert amis.discounted_price == 12000
    assert amis.to_payload()["discountedPrice"] == 12000


def test_store_failure_yields_no_recommendations():
    generator = RecommendationGenerator(UnavailableCatalogue())

    assert asyncio.run(generator.recommend("couples", Intent.PURCHASE, UserProfile())) == []


def test_score_is_capped_and_prioritised():
    product = Product(id="p", name="Jeu couple amour", price=14000, description="couple communication jeux")
    profile = UserProfile(
        relationship=RelationshipContext.COUPLE,
        interests=["couple", "communication"],
        price_sensitivity=PriceSensitivity.BUDGET,
    )

    score, reason = score_product(product, profile)

    assert score == 1.0
    assert reason == "Idéal pour renforcer votre complicité de couple 💕"
    assert [priority_for(value) for value in (0.9, 0.8, 0.6, 0.5)] == ["high", "medium", "medium", "low"]


def test_upsell_reply_offers_add_on_choices(catalogue):
    generator = RecommendationGenerator(catalogue)

    reply = asyncio.run(generator.upsell_reply("Merci !", "couples", UserProfile()))

    assert reply.next_step is StepTag.ORDER_FINALIZED
    assert reply.actions.trigger_upsell
    assert reply.message.startswith("Merci !")
    assert reply.choices[-2:] == [templates.CHOICE_TRACK_ORDER, templates.CHOICE_FINISH]
    assert all(choice.startswith(templates.ADD_PRODUCT_PREFIX) for choice in reply.choices[:-2])
    assert len(reply.metadata.recommendations) == 2


def test_upsell_reply_without_candidates():
    generator = RecommendationGenerator(UnavailableCatalogue())

    reply = asyncio.run(generator.upsell_reply("Merci !", "couples", UserProfile()))

    assert reply.message == "Merci !"
    assert not reply.actions.trigger_upsell
    assert reply.choices == [templates.CHOICE_TRACK_ORDER, templates.CHOICE_FINISH]
