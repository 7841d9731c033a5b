"""
Shared fixtures: a fake Azure Language endpoint, a scripted chat model,
an in-memory retriever and a tracer that records what it emits.
"""

import os

# Keep LangFuse out of the tests, whatever the developer's shell exports
os.environ["LANGFUSE_SECRET_KEY"] = ""
os.environ["LANGFUSE_PUBLIC_KEY"] = ""

import json
from contextlib import contextmanager
from typing import Any, Dict, List, Optional

import httpx
import pytest
from langchain_core.messages import AIMessage

from agents.orchestrator import AgentOrchestrator
from agents.registry import HandlerRegistry
from agents.router import IntentClassifier
from agents.routing_policy import RoutingPolicy
from infrastructure.observability import ConversationTracer
from memory.conversation_store import ConversationStore
from memory.intent_history import IntentHistory

ENDPOINT = "https://lang.example.com"


def clu_payload(
    top_intent: Optional[str],
    intents: Dict[str, float],
    entities: Optional[List[Dict[str, Any]]] = None,
) -> Dict[str, Any]:
    """Shape of an ``analyze-conversations`` response."""
    prediction: Dict[str, Any] = {
        "projectKind": "Conversation",
        "intents": [{"category": c, "confidenceScore": s} for c, s in intents.items()],
        "entities": entities or [],
    }
    if top_intent is not None:
        prediction["topIntent"] = top_intent
    return {"kind": "ConversationResult", "result": {"query": "q", "prediction": prediction}}


def entity(category: str, text: str = "", score: float = 0.9) -> Dict[str, Any]:
    return {"category": category, "text": text, "confidenceScore": score}


class RecordingTracer(ConversationTracer):
    """Tracer without a LangFuse client that keeps every event and span."""

    def __init__(self) -> None:
        super().__init__(client=None)
        self.events: List[Dict[str, Any]] = []
        self.evaluations: List[Dict[str, Any]] = []
        self.spans: List[Any] = []

    def _event(self, name, chat_id, *, content, metadata=None):
        self.events.append({"name": name, "chat_id": chat_id, "content": content,
                            "metadata": metadata or {}})

    def trace_evaluation(self, chat_id, response_id, evaluator_name, score, comment=""):
        self.evaluations.append({"chat_id": chat_id, "response_id": response_id,
                                 "name": evaluator_name, "score": score, "comment": comment})

    @contextmanager
    def invocation(self, kind, chat_id, name, input, *, agent_name=None):
        with super().invocation(kind, chat_id, name, input, agent_name=agent_name) as span:
            span.kind = kind
            self.spans.append(span)
            yield span

    def event_names(self, chat_id: Optional[str] = None) -> List[str]:
        return [e["name"] for e in self.events if chat_id is None or e["chat_id"] == chat_id]


class ClassifierStub:
    """Routes each message text to a canned payload (or status code)."""

    def __init__(self) -> None:
        self.responses: Dict[str, Any] = {}
        self.default: Any = clu_payload("informatieVergoedingen", {"informatieVergoedingen": 0.9})
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        body = json.loads(request.content)
        text = body["analysisInput"]["conversationItem"]["text"]
        answer = self.responses.get(text, self.default)
        if isinstance(answer, int):
            return httpx.Response(answer, text="boom")
        if isinstance(answer, Exception):
            raise answer
        return httpx.Response(200, json=answer)


class FakeChatModel:
    """
    Scripted stand-in for ``ChatOpenAI``.

    ``replies`` are consumed in order; each is a string or an
    ``AIMessage`` (e.g. one carrying ``tool_calls``).
    """

    model_name = "fake-model"

    def __init__(self, replies: Optional[List[Any]] = None, default: str = "ok") -> None:
        self.replies = list(replies or [])
        self.default = default
        self.calls: List[List[Any]] = []
        self.bound_tools: List[Any] = []

    def bind_tools(self, tools):
        self.bound_tools = list(tools)
        return self

    def invoke(self, messages):
        self.calls.append(list(messages))
        reply = self.replies.pop(0) if self.replies else self.default
        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, AIMessage):
            return reply
        return AIMessage(content=reply)


class FakeRetriever:
    def __init__(self, hits: Optional[List[Dict[str, Any]]] = None, error: Optional[Exception] = None):
        self.hits = hits or []
        self.error = error
        self.queries: List[str] = []

    def search(self, query, top_k):
        self.queries.append(query)
        if self.error is not None:
            raise self.error
        return self.hits[:top_k]


class EchoHandler:
    """Handler that replies with a fixed text and cites fixed documents."""

    def __init__(self, name: str, reply: str = "", documents: Optional[List[str]] = None,
                 error: Optional[Exception] = None) -> None:
        self.name = name
        self.reply = reply or f"{name} reply"
        self.documents = documents or []
        self.error = error
        self.seen: List[str] = []

    def invoke(self, transcript, context):
        self.seen.append(transcript.last_user_message())
        if self.documents:
            context.accumulator.record_documents_cited(self.documents)
        if self.error is not None:
            raise self.error
        return self.reply


@pytest.fixture
def tracer() -> RecordingTracer:
    return RecordingTracer()


@pytest.fixture
def clu() -> ClassifierStub:
    return ClassifierStub()


@pytest.fixture
def classifier(clu, tracer) -> IntentClassifier:
    client = httpx.Client(transport=httpx.MockTransport(clu))
    instance = IntentClassifier(
        ENDPOINT, "secret-key", "prod",
        http_client=client,
        intent_history=IntentHistory(),
        tracer=tracer,
    )
    yield instance
    instance.close()


@pytest.fixture
def store(classifier) -> ConversationStore:
    return ConversationStore(
        system_message="You are a helpful healthcare insurance assistant.",
        ttl_seconds=None,
        max_conversations=None,
        on_evict=classifier.intent_history.clear,
    )


@pytest.fixture
def registry() -> HandlerRegistry:
    registry = HandlerRegistry()
    registry.register(EchoHandler("FAQAgent", "Vergoedingen staan in uw polis."))
    registry.register(EchoHandler("AdminAgent", "Uw afspraak is geannuleerd."))
    return registry


@pytest.fixture
def orchestrator(classifier, registry, store, tracer) -> AgentOrchestrator:
    return AgentOrchestrator(
        classifier=classifier,
        registry=registry,
        store=store,
        policy=RoutingPolicy(),
        tracer=tracer,
    )
