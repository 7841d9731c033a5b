import pytest

from agents.orchestrator import merge_replies
from conftest import EchoHandler, clu_payload, entity


def roles(transcript):
    return [m.role for m in transcript.messages]


def test_transcript_grows_by_two_per_turn(orchestrator, store):
    orchestrator.run_turn("c1", "Wat kost de premie?")
    first = len(store.get_or_create_transcript("c1"))
    orchestrator.run_turn("c1", "En met aanvullende verzekering?")
    second = len(store.get_or_create_transcript("c1"))

    assert first == 3
    assert second == first + 2
    assert roles(store.get_or_create_transcript("c1")) == [
        "system", "user", "assistant", "user", "assistant"]


def test_turn_result_reports_handlers_and_documents(orchestrator, registry):
    registry.register(EchoHandler("FAQAgent", "Zie polis.", documents=["PolicyA.pdf", "PolicyA.pdf"]))

    result = orchestrator.run_turn("c1", "Wat wordt vergoed?")

    assert result.reply_text == "Zie polis."
    assert result.handlers_used == ["FAQAgent"]
    assert result.documents_cited == ["PolicyA.pdf"]
    assert result.intent.top_intent == "informatieVergoedingen"
    assert result.response_id.startswith("c1/")
    assert not orchestrator.aggregator.is_active("c1")


def test_entity_override_routes_to_admin(orchestrator, clu):
    clu.responses["Ik wil mijn afspraak annuleren"] = clu_payload(
        "informatieVergoedingen", {"informatieVergoedingen": 0.6},
        [entity("afspraak", "afspraak")],
    )

    result = orchestrator.run_turn("c1", "Ik wil mijn afspraak annuleren")

    assert result.handlers_used == ["AdminAgent"]
    assert result.plan.rule == "entity"


def test_multiple_handlers_are_merged_in_order(orchestrator, clu):
    clu.responses["premie en afspraak"] = clu_payload(
        "informatiePremie", {"informatiePremie": 0.9, "afspraakMaken": 0.85})

    result = orchestrator.run_turn("c1", "premie en afspraak")

    assert result.handlers_used == ["FAQAgent", "AdminAgent"]
    assert result.reply_text == "Vergoedingen staan in uw polis.\n\nUw afspraak is geannuleerd."


def test_classifier_failure_still_answers(orchestrator, clu):
    clu.responses["hallo"] = 500

    result = orchestrator.run_turn("c1", "hallo")

    assert result.intent.fallback is True
    assert result.handlers_used == ["FAQAgent"]


def test_unknown_handler_reply_completes_turn(orchestrator, store):
    orchestrator.policy.default_handler = "BillingAgent"
    orchestrator.policy.intent_handlers = {}

    result = orchestrator.run_turn("c1", "factuur")

    assert result.reply_text == "Handler 'BillingAgent' not found."
    assert result.handlers_used == []
    assert len(store.get_or_create_transcript("c1")) == 3


def test_handler_error_is_part_of_reply(orchestrator, registry):
    registry.register(EchoHandler("FAQAgent", error=ValueError("index down")))

    result = orchestrator.run_turn("c1", "vraag")

    assert result.reply_text == "Error: index down"
    assert result.handlers_used == ["FAQAgent"]


def test_failed_turn_rolls_back_every_transcript(orchestrator, store, monkeypatch):
    orchestrator.run_turn("c1", "eerste vraag")
    top_before = store.get_or_create_transcript("c1").messages
    faq_before = store.get_or_create_handler_transcript("c1", "FAQAgent").messages

    def explode(replies):
        raise RuntimeError("compose failed")

    monkeypatch.setattr("agents.orchestrator.merge_replies", explode)
    with pytest.raises(RuntimeError, match="compose failed"):
        orchestrator.run_turn("c1", "tweede vraag")

    assert store.get_or_create_transcript("c1").messages == top_before
    assert store.get_or_create_handler_transcript("c1", "FAQAgent").messages == faq_before
    assert not orchestrator.aggregator.is_active("c1")

    monkeypatch.undo()
    orchestrator.run_turn("c1", "tweede vraag")
    assert len(store.get_or_create_transcript("c1")) == 5


def test_telemetry_per_turn(orchestrator, tracer):
    orchestrator.run_turn("c1", "abcdefgh")
    orchestrator.run_turn("c1", "nog een")

    names = tracer.event_names("c1")
    assert names.count("gen_ai.system.message") == 1
    assert names.count("gen_ai.user.message") == 2
    assert names.count("gen_ai.choice") == 2

    choice = next(e for e in tracer.events if e["name"] == "gen_ai.choice")
    assert choice["metadata"]["gen_ai.usage.input_tokens"] == 2.0
    assert [e["name"] for e in tracer.evaluations] == ["AgentUsage", "AgentUsage"]
    assert tracer.evaluations[0]["score"] == 1

    kinds = [(s.kind, s.name) for s in tracer.spans]
    assert ("tool", "IntentTool") in kinds and ("agent", "FAQAgent") in kinds


def test_no_evaluation_without_handlers(orchestrator, tracer):
    orchestrator.policy.default_handler = "BillingAgent"
    orchestrator.policy.intent_handlers = {}

    orchestrator.run_turn("c1", "factuur")

    assert tracer.evaluations == []


def test_reset_forgets_conversation(orchestrator, store):
    orchestrator.run_turn("c1", "vraag")

    assert orchestrator.reset("c1") is True
    assert orchestrator.intent_history.get("c1") is None
    assert not store.has_conversation("c1")


def test_merge_replies_skips_blanks():
    assert merge_replies(["a", "", "  ", "b "]) == "a\n\nb"
    assert merge_replies([]) == ""


class OpensOtherConversation:
    """FAQ handler that starts another conversation while it answers."""

    name = "FAQAgent"

    def __init__(self, store, other_id):
        self.store = store
        self.other_id = other_id

    def invoke(self, transcript, context):
        self.store.open(self.other_id)
        return "antwoord"


def test_running_turn_survives_eviction_pressure(orchestrator, registry, store):
    store.max_conversations = 1
    registry.register(OpensOtherConversation(store, "B"))

    result = orchestrator.run_turn("A", "eerste vraag")

    assert result.reply_text == "antwoord"
    assert not store.is_pinned("A")
    assert orchestrator.intent_history.get("A").query == "eerste vraag"
    transcript = store.get_or_create_transcript("A")
    assert roles(transcript) == ["system", "user", "assistant"]
    assert [m.role for m in store.get_or_create_handler_transcript("A", "FAQAgent").messages] == [
        "user", "assistant"]


def test_failed_turn_restores_intent_record(orchestrator, clu, monkeypatch):
    clu.responses["klacht"] = clu_payload("klachtIndienen", {"klachtIndienen": 0.9})
    orchestrator.run_turn("c1", "eerste vraag")

    monkeypatch.setattr("agents.orchestrator.merge_replies", lambda replies: 1 / 0)
    with pytest.raises(ZeroDivisionError):
        orchestrator.run_turn("c1", "klacht")
    with pytest.raises(ZeroDivisionError):
        orchestrator.run_turn("c2", "klacht")

    assert orchestrator.intent_history.get("c1").query == "eerste vraag"
    assert orchestrator.intent_history.get("c1").intent == "informatieVergoedingen"
    assert orchestrator.intent_history.get("c2") is None
    assert not orchestrator.store.is_pinned("c1")
