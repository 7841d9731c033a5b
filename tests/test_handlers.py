import json

import pytest
from langchain_core.messages import AIMessage, ToolMessage

from agents.handlers import AdminHandler, FAQHandler
from agents.prompts import format_search_results
from agents.tools import EmailTool, SearchTool
from memory.conversation_store import Transcript
from memory.turn_aggregator import TurnAggregator
from memory.turn_context import TurnContext

from conftest import FakeChatModel, FakeRetriever

HITS = [
    {"title": "PolicyA.pdf", "chunk_text": "Fysiotherapie: 9 behandelingen.", "score": 0.91},
    {"title": "PolicyA.pdf", "chunk_text": "Aanvullend pakket.", "score": 0.83},
    {"title": "PolicyB.pdf", "chunk_text": "Eigen risico 385 euro.", "score": 0.77},
    {"title": " ", "chunk_text": "zonder titel", "score": 0.5},
]


@pytest.fixture
def context():
    return TurnContext("c1", TurnAggregator().begin("c1"))


def transcript_with(question):
    transcript = Transcript("c1", "FAQAgent")
    transcript.append_user(question)
    return transcript


# search tool

def test_search_records_distinct_titles(context, tracer):
    tool = SearchTool(FakeRetriever(HITS), top_k=5, tracer=tracer)

    results = tool.search("fysio", context)

    assert len(results) == 4
    assert context.accumulator.peek()[1] == ["PolicyA.pdf", "PolicyB.pdf"]
    span = tracer.spans[-1]
    assert (span.kind, span.name, span.success) == ("tool", "SearchTool", True)
    assert span.metadata["documents_found"] == 2


def test_search_failure_returns_nothing(context, tracer):
    tool = SearchTool(FakeRetriever(error=ConnectionError("qdrant down")), tracer=tracer)

    assert tool.search("fysio", context) == []
    assert context.accumulator.peek() == ([], [])
    assert tracer.spans[-1].success is False


def test_format_search_results_truncates():
    text = format_search_results([{"title": "T.pdf", "chunk_text": "x" * 20}], max_chars=5)
    assert text == "--- [1] T.pdf ---\nxxxxx…"
    assert format_search_results([]) == "(no passages found)"


# FAQ handler

def test_faq_answer_is_grounded_in_passages(context, tracer):
    llm = FakeChatModel(["Negen behandelingen.\nReferences: PolicyA.pdf"])
    retriever = FakeRetriever(HITS)
    handler = FAQHandler(llm, search_tool=SearchTool(retriever, tracer=tracer))

    reply = handler.invoke(transcript_with("Hoeveel fysio?"), context)

    assert reply == "Negen behandelingen.\nReferences: PolicyA.pdf"
    assert retriever.queries == ["Hoeveel fysio?"]
    messages = llm.calls[0]
    assert messages[0]["role"] == "system" and "References:" in messages[0]["content"]
    assert "Eigen risico 385 euro." in messages[1]["content"]
    assert messages[-1] == {"role": "user", "content": "Hoeveel fysio?"}
    assert context.accumulator.peek()[1] == ["PolicyA.pdf", "PolicyB.pdf"]


def test_faq_without_search_tool(context):
    llm = FakeChatModel(["Dat weet ik niet zeker."])
    handler = FAQHandler(llm)

    assert handler.invoke(transcript_with("vraag"), context) == "Dat weet ik niet zeker."
    assert "(no passages found)" in llm.calls[0][1]["content"]


def test_faq_model_error_propagates(context):
    handler = FAQHandler(FakeChatModel([RuntimeError("rate limited")]))

    with pytest.raises(RuntimeError, match="rate limited"):
        handler.invoke(transcript_with("vraag"), context)


# admin handler

def tool_call(args, call_id="call_1", name="send_confirmation_email"):
    return AIMessage(content="", tool_calls=[{"name": name, "args": args, "id": call_id}])


def test_admin_sends_confirmation_email(context, tracer):
    email = EmailTool()
    llm = FakeChatModel([
        tool_call({"email_address": "jan@example.nl", "action": "appointment cancellation",
                   "details": "Dinsdag 10:00 bij de fysiotherapeut"}),
        "Uw afspraak is geannuleerd; u ontvangt een bevestiging per e-mail.",
    ])
    handler = AdminHandler(llm, email_tool=email, tracer=tracer)

    reply = handler.invoke(transcript_with("Annuleer mijn afspraak, mail jan@example.nl"), context)

    assert reply.startswith("Uw afspraak is geannuleerd")
    assert [t.name for t in llm.bound_tools] == ["send_confirmation_email"]
    assert email.sent_emails[0]["recipient"] == "jan@example.nl"

    second_call = llm.calls[1]
    tool_message = second_call[-1]
    assert isinstance(tool_message, ToolMessage)
    assert tool_message.tool_call_id == "call_1"
    assert json.loads(tool_message.content)["success"] is True
    assert (tracer.spans[-1].name, tracer.spans[-1].success) == ("EmailTool", True)


def test_admin_unknown_tool_is_reported_to_model(context, tracer):
    llm = FakeChatModel([tool_call({}, name="delete_account"), "Dat kan ik niet doen."])
    handler = AdminHandler(llm, tracer=tracer)

    assert handler.invoke(transcript_with("verwijder alles"), context) == "Dat kan ik niet doen."
    assert json.loads(llm.calls[1][-1].content)["success"] is False
    assert tracer.spans[-1].success is False


def test_admin_stops_after_max_tool_rounds(context, tracer):
    args = {"email_address": "jan@example.nl", "action": "complaint", "details": "wachttijd"}
    llm = FakeChatModel([tool_call(args, "c1"), "Uw klacht is geregistreerd."])
    handler = AdminHandler(llm, max_tool_rounds=1, tracer=tracer)

    assert handler.invoke(transcript_with("klacht"), context) == "Uw klacht is geregistreerd."
    assert len(llm.calls) == 2
