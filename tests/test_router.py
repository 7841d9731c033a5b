import json

import httpx
import pytest

from agents.router import IntentClassifier, IntentDecision, fallback_decision
from memory.intent_history import IntentHistory

from conftest import ENDPOINT, clu_payload, entity


def test_parses_top_intent_intents_and_entities(classifier, clu):
    clu.responses["Wat wordt vergoed?"] = clu_payload(
        "informatieVergoedingen",
        {"informatieVergoedingen": 0.93, "informatiePremie": 0.41},
        [entity("verzekering", "basisverzekering", 0.8)],
    )

    decision = classifier.classify("Wat wordt vergoed?", conversation_id="c1")

    assert decision.top_intent == "informatieVergoedingen"
    assert decision.confidence == pytest.approx(0.93)
    assert decision.all_intents == {"informatieVergoedingen": 0.93, "informatiePremie": 0.41}
    assert decision.entity_categories() == ["verzekering"]
    assert decision.entities[0].text == "basisverzekering"
    assert decision.fallback is False


def test_request_shape(classifier, clu):
    classifier.classify("Hallo", "nl", conversation_id="c1")

    request = clu.requests[0]
    assert request.method == "POST"
    assert request.url.path == "/language/:analyze-conversations"
    assert request.url.params["api-version"] == classifier.api_version
    assert request.headers["Ocp-Apim-Subscription-Key"] == "secret-key"

    body = json.loads(request.content)
    assert body["kind"] == "Conversation"
    item = body["analysisInput"]["conversationItem"]
    assert item["text"] == "Hallo"
    assert item["language"] == "nl"
    assert item["modality"] == "text"
    assert body["parameters"]["deploymentName"] == "prod"
    assert body["parameters"]["stringIndexType"] == "TextElement_V8"


@pytest.mark.parametrize("failure", [500, 401, httpx.ConnectError("refused")])
def test_failure_yields_fallback(classifier, clu, failure):
    clu.responses["help"] = failure

    decision = classifier.classify("help", conversation_id="c1")

    assert decision.top_intent == "informatieVergoedingen"
    assert decision.confidence == 0.5
    assert decision.fallback is True
    assert decision.all_intents == {"informatieVergoedingen": 0.5}
    assert decision.entities == []


def test_malformed_payload_yields_fallback(classifier, clu):
    clu.responses["help"] = {"kind": "ConversationResult", "result": {}}

    decision = classifier.classify("help")

    assert decision.fallback is True
    assert decision.top_intent == "informatieVergoedingen"


def test_empty_body_yields_fallback():
    client = httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(200, text="")))
    classifier = IntentClassifier(ENDPOINT, "k", "prod", http_client=client)

    decision = classifier.classify("help")

    assert decision.fallback is True
    assert decision.confidence == 0.5


def test_unconfigured_classifier_never_calls_out():
    calls = []
    client = httpx.Client(transport=httpx.MockTransport(lambda r: calls.append(r) or httpx.Response(200)))
    classifier = IntentClassifier("", None, None, http_client=client)

    decision = classifier.classify("help")

    assert decision.fallback is True
    assert calls == []


def test_missing_top_intent_is_empty_string():
    payload = clu_payload(None, {"afspraakMaken": 0.7})

    decision = IntentClassifier._parse_response(payload)

    assert decision.top_intent == ""
    assert decision.confidence == 0.0
    assert decision.all_intents == {"afspraakMaken": 0.7}


def test_scores_are_clamped():
    payload = clu_payload("afspraakMaken", {"afspraakMaken": 1.7, "klachtIndienen": "x"},
                          [entity("Afspraak", "morgen", -3)])

    decision = IntentClassifier._parse_response(payload)

    assert decision.confidence == 1.0
    assert decision.all_intents["klachtIndienen"] == 0.0
    assert decision.entities[0].confidence == 0.0


def test_history_keeps_last_decision_per_conversation(classifier, clu):
    clu.responses["klacht"] = clu_payload("klachtIndienen", {"klachtIndienen": 0.88})

    classifier.classify("vraag", conversation_id="c1")
    classifier.classify("klacht", conversation_id="c1")
    classifier.classify("vraag", conversation_id="c2")

    record = classifier.intent_history.get("c1")
    assert record.query == "klacht"
    assert record.intent == "klachtIndienen"
    assert json.loads(classifier.intent_history.get_json("c2"))["query"] == "vraag"
    assert len(classifier.intent_history) == 2


def test_history_json_for_unknown_conversation():
    history = IntentHistory()
    assert json.loads(history.get_json("nope")) == {"query": "", "intent": "", "confidence": 0.0}


def test_classifier_span_carries_intent(classifier, clu, tracer):
    clu.responses["boom"] = 503

    classifier.classify("boom", conversation_id="c9")

    span = tracer.spans[-1]
    assert span.kind == "tool"
    assert span.name == "IntentTool"
    assert span.success is False
    assert span.metadata["gen_ai.intent"] == "informatieVergoedingen"


def test_fallback_decision_has_full_shape():
    decision = fallback_decision()
    assert isinstance(decision, IntentDecision)
    assert decision.top_intent and decision.confidence == 0.5
    assert decision.to_record("q").fallback is True
