import pytest

from agents.router import IntentDecision, IntentEntity
from agents.routing_policy import RoutingPolicy


@pytest.fixture
def policy():
    return RoutingPolicy()


def decision(top, intents=None, categories=()):
    return IntentDecision(
        top_intent=top,
        confidence=(intents or {}).get(top, 0.9),
        all_intents=intents or {top: 0.9},
        entities=[IntentEntity(c, "x", 0.9) for c in categories],
    )


@pytest.mark.parametrize("intent", ["informatieVergoedingen", "declaratieIndienen",
                                    "adviesVerzekering", "informatiePremie"])
def test_faq_intents(policy, intent):
    assert policy.route(decision(intent)).handlers == ("FAQAgent",)


@pytest.mark.parametrize("intent", ["klachtIndienen", "afspraakMaken",
                                    "afspraakAnnuleren", "afspraakWijzigen"])
def test_admin_intents(policy, intent):
    plan = policy.route(decision(intent))
    assert plan.handlers == ("AdminAgent",)
    assert plan.rule == "intent"


def test_appointment_entity_overrides_top_intent(policy):
    plan = policy.route(decision(
        "informatieVergoedingen",
        {"informatieVergoedingen": 0.9, "informatiePremie": 0.85},
        categories=["AfspraakDatum"],
    ))

    assert plan.handlers == ("AdminAgent",)
    assert plan.rule == "entity"
    assert plan.primary == "AdminAgent"


@pytest.mark.parametrize("category", ["complaint", "KlachtType", "appointment_time"])
def test_other_override_categories(policy, category):
    assert policy.route(decision("informatiePremie", categories=[category])).handlers == ("AdminAgent",)


def test_unknown_and_missing_intent_use_default(policy):
    assert policy.route(decision("None")).rule == "default"
    assert policy.route(decision("")).handlers == ("FAQAgent",)


def test_strong_secondary_intent_adds_handler(policy):
    plan = policy.route(decision(
        "informatiePremie",
        {"informatiePremie": 0.91, "afspraakMaken": 0.82, "klachtIndienen": 0.4},
    ))

    assert plan.handlers == ("FAQAgent", "AdminAgent")


def test_secondary_intents_never_duplicate_handlers(policy):
    plan = policy.route(decision(
        "afspraakMaken",
        {"afspraakMaken": 0.9, "afspraakWijzigen": 0.85, "klachtIndienen": 0.84},
    ))

    assert plan.handlers == ("AdminAgent",)


def test_secondary_intents_can_be_disabled():
    policy = RoutingPolicy(secondary_intent_threshold=None)
    plan = policy.route(decision("informatiePremie", {"informatiePremie": 0.9, "afspraakMaken": 0.9}))
    assert plan.handlers == ("FAQAgent",)


def test_routing_is_deterministic(policy):
    d = decision("afspraakMaken", {"afspraakMaken": 0.81, "informatiePremie": 0.81},
                 categories=["Datum"])
    plans = {policy.route(d) for _ in range(20)}
    assert len(plans) == 1
    assert next(iter(plans)).handlers == ("AdminAgent", "FAQAgent")


def test_custom_tables():
    policy = RoutingPolicy(
        intent_handlers={"betaling": "BillingAgent"},
        entity_overrides={},
        default_handler="FAQAgent",
    )
    assert policy.route(decision("betaling")).handlers == ("BillingAgent",)
    assert policy.route(decision("afspraakMaken", categories=["afspraak"])).handlers == ("FAQAgent",)
