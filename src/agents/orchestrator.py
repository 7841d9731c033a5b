"""
Agent Orchestrator - one conversation turn, start to finish.

Flow:
  1. Open the conversation (create + seed the system message if new)
     and record the user message in the top-level transcript.
  2. Classify the intent (IntentClassifier → IntentDecision, never fails).
  3. Route: RoutingPolicy maps the decision to one or more handlers.
  4. Invoke each handler in order through the dispatcher.
  5. Compose the reply and append it to the top-level transcript.
  6. Drain the turn's accumulator (handlers used, documents cited).

A turn is all-or-nothing: if anything raises before step 6 the
transcripts and the intent record are rolled back to where they were
and the turn's accumulator is discarded, so a retry resumes from the
last good state.  The conversation is pinned in the store for the whole
turn, so eviction cannot drop it halfway.
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Optional

from loguru import logger

from agents.registry import HandlerDispatcher, HandlerRegistry
from agents.router import IntentClassifier, IntentDecision
from agents.routing_policy import RoutingPlan, RoutingPolicy
from infrastructure.observability import (
    ConversationTracer,
    observe,
    update_current_trace,
)
from memory.conversation_store import ConversationStore
from memory.intent_history import IntentHistory
from memory.turn_aggregator import TurnAggregator
from memory.turn_context import TurnContext


class TurnState(str, Enum):
    IDLE = "idle"
    CLASSIFYING_INTENT = "classifying_intent"
    ROUTING = "routing"
    INVOKING = "invoking"
    COMPOSING = "composing"
    DONE = "done"


@dataclass
class TurnResult:
    """
    Outcome of one turn.

    Attributes:
        reply_text: The composed reply.
        handlers_used: Handlers invoked, in call order.
        documents_cited: Distinct document titles the handlers cited.
        conversation_id: Conversation the turn belongs to.
        response_id: Telemetry id of this reply.
        intent: The intent decision the routing was based on.
        plan: The routing plan that was executed.
        latency_ms: End-to-end processing time.
    """

    reply_text: str
    handlers_used: List[str] = field(default_factory=list)
    documents_cited: List[str] = field(default_factory=list)
    conversation_id: str = ""
    response_id: str = ""
    intent: Optional[IntentDecision] = None
    plan: Optional[RoutingPlan] = None
    latency_ms: int = 0


def merge_replies(replies: List[str]) -> str:
    """Join non-empty replies with a blank line, in dispatch order."""
    parts = [r.strip() for r in replies if r and r.strip()]
    return "\n\n".join(parts)


class AgentOrchestrator:
    """
    Ties classification, routing, dispatch and aggregation together.

    Dependencies (injected via '__init__'):
        classifier   - IntentClassifier
        registry     - HandlerRegistry (built once at startup)
        store        - ConversationStore
        aggregator   - TurnAggregator
        policy       - RoutingPolicy
        tracer       - ConversationTracer

    The caller must not run two turns of the same conversation at once;
    ``ChatService`` takes care of that.
    """

    def __init__(
        self,
        classifier: IntentClassifier,
        registry: HandlerRegistry,
        store: Optional[ConversationStore] = None,
        aggregator: Optional[TurnAggregator] = None,
        policy: Optional[RoutingPolicy] = None,
        tracer: Optional[ConversationTracer] = None,
    ) -> None:
        self.classifier = classifier
        self.registry = registry
        self.store = store if store is not None else ConversationStore(
            on_evict=classifier.intent_history.clear
        )
        self.aggregator = aggregator if aggregator is not None else TurnAggregator()
        self.policy = policy or RoutingPolicy()
        self.tracer = tracer or ConversationTracer()
        self.dispatcher = HandlerDispatcher(registry, self.store, self.tracer)

    @property
    def intent_history(self) -> IntentHistory:
        return self.classifier.intent_history

    # public entry point

    @observe(name="agent_turn")
    def run_turn(
        self,
        conversation_id: str,
        user_text: str,
        user_id: str = "anonymous",
        language: Optional[str] = None,
    ) -> TurnResult:
        """
        Process a single user message through the full pipeline.

        Raises whatever escaped the pipeline, after rolling the turn back.
        """
        t0 = time.time()
        state = TurnState.IDLE

        update_current_trace(user_id=user_id, session_id=conversation_id, tags=["turn"])

        context = TurnContext(
            conversation_id=conversation_id,
            accumulator=self.aggregator.begin(conversation_id),
            user_id=user_id,
        )

        self.store.pin(conversation_id)
        try:
            self.tracer.trace_user_message(conversation_id, user_text, user_id)

            #  Step 1: open conversation, record the user message
            transcript, created = self.store.open(conversation_id)
            if created:
                self.tracer.trace_system_message(conversation_id, self.store.system_message)
            context.touch(transcript)
            transcript.append_user(user_text)

            #  Step 2: classify
            state = TurnState.CLASSIFYING_INTENT
            context.track_intent(self.intent_history)
            decision = self.classifier.classify(
                user_text, language, conversation_id=conversation_id
            )

            #  Step 3: route
            state = TurnState.ROUTING
            plan = self.policy.route(decision)
            logger.info(
                "Route: {} ({}; intent={}, conf={:.2f}{})",
                ", ".join(plan.handlers),
                plan.reason,
                decision.top_intent,
                decision.confidence,
                ", fallback" if decision.fallback else "",
            )

            #  Step 4: invoke handlers in order
            state = TurnState.INVOKING
            replies = [
                self.dispatcher.dispatch(name, user_text, context)
                for name in plan.handlers
            ]

            #  Step 5: compose
            state = TurnState.COMPOSING
            reply_text = merge_replies(replies)
            transcript.append_assistant(reply_text)

            #  Step 6: drain + commit
            handlers_used, documents_cited = self.aggregator.drain(conversation_id)
            context.commit()
            state = TurnState.DONE
        except BaseException:
            logger.error("Turn failed in state '{}' for {}", state.value, conversation_id)
            context.rollback()
            self.aggregator.discard(conversation_id)
            raise
        finally:
            self.store.unpin(conversation_id)

        latency_ms = int((time.time() - t0) * 1000)
        self._trace_reply(context, user_text, reply_text, handlers_used)

        update_current_trace(
            metadata={
                "handlers": handlers_used,
                "intent": decision.top_intent,
                "confidence": decision.confidence,
                "latency_ms": latency_ms,
            },
        )

        return TurnResult(
            reply_text=reply_text,
            handlers_used=handlers_used,
            documents_cited=documents_cited,
            conversation_id=conversation_id,
            response_id=context.response_id,
            intent=decision,
            plan=plan,
            latency_ms=latency_ms,
        )

    def reset(self, conversation_id: str) -> bool:
        """Forget a conversation's transcripts and intent history."""
        self.aggregator.discard(conversation_id)
        self.intent_history.clear(conversation_id)
        return self.store.reset(conversation_id)

    #  helpers

    def _trace_reply(
        self,
        context: TurnContext,
        user_text: str,
        reply_text: str,
        handlers_used: List[str],
    ) -> None:
        # Rough token estimate: four characters per token
        self.tracer.trace_assistant_message(
            context.conversation_id,
            context.response_id,
            reply_text,
            tokens_input=len(user_text) / 4.0,
            tokens_output=len(reply_text) / 4.0,
        )
        if handlers_used:
            self.tracer.trace_evaluation(
                context.conversation_id,
                context.response_id,
                "AgentUsage",
                len(handlers_used),
                f"Used {len(handlers_used)} agents: {', '.join(handlers_used)}",
            )


# Factory: build a fully-wired orchestrator from config


def build_agent(
    enable_search: bool = True,
    llm: Optional[Any] = None,
) -> AgentOrchestrator:
    """
    Convenience factory that constructs and wires all components.

    Reads config / env for API keys and endpoints.

    Args:
        enable_search: Attach Qdrant document search to the FAQ handler.
        llm: Chat model override (defaults to ``get_chat_llm()``).

    Returns:
        A fully initialised ``AgentOrchestrator``.
    """
    from infrastructure.llm import get_chat_llm
    from agents.handlers import AdminHandler, FAQHandler
    from agents.tools import EmailTool, SearchTool

    # Eagerly init LangFuse so child spans are captured
    tracer = ConversationTracer.from_config()

    llm_chat = llm or get_chat_llm(temperature=0)
    logger.info("Chat model: {}", getattr(llm_chat, "model_name", getattr(llm_chat, "model", "?")))

    intent_history = IntentHistory()
    classifier = IntentClassifier(intent_history=intent_history, tracer=tracer)
    store = ConversationStore(on_evict=intent_history.clear)

    search_tool = None
    if enable_search:
        try:
            from agents.tools import QdrantRetriever
            from infrastructure.db.qdrant_client import collection_exists
            from infrastructure.llm import get_default_embeddings

            if not collection_exists():
                raise RuntimeError("document collection is missing")
            search_tool = SearchTool(QdrantRetriever(get_default_embeddings()), tracer=tracer)
            logger.info("Document search loaded")
        except Exception as exc:
            logger.warning("Document search unavailable: {}", exc)

    registry = HandlerRegistry()
    registry.register(FAQHandler(llm_chat, search_tool=search_tool))
    registry.register(AdminHandler(llm_chat, email_tool=EmailTool(), tracer=tracer))
    logger.info("Handlers registered: {}", ", ".join(registry.names()))

    return AgentOrchestrator(
        classifier=classifier,
        registry=registry,
        store=store,
        policy=RoutingPolicy(),
        tracer=tracer,
    )
