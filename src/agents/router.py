"""
Intent classifier - Azure conversational language understanding.

Takes a user message and returns an ``IntentDecision`` the routing
policy can act on.  The classifier never raises: any failure (network,
status, payload) yields the fallback decision, which has exactly the
same shape as a real one.
"""

import json
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx
from loguru import logger

from infrastructure.config import (
    AZURE_LANGUAGE_DEPLOYMENT,
    AZURE_LANGUAGE_ENDPOINT,
    AZURE_LANGUAGE_KEY,
    FALLBACK_CONFIDENCE,
    FALLBACK_INTENT,
    INTENT_API_VERSION,
    INTENT_LANGUAGE,
    INTENT_PROJECT_NAME,
    INTENT_TIMEOUT_SECONDS,
)
from infrastructure.observability import ConversationTracer, intent_summary
from memory.intent_history import IntentHistory
from memory.schemas import IntentRecord

INTENT_TOOL_NAME = "IntentTool"
ORCHESTRATOR_NAME = "OrchestratorAgent"


@dataclass(frozen=True)
class IntentEntity:
    """A span of the user's message tagged with a category."""

    category: str
    text: str = ""
    confidence: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {"category": self.category, "text": self.text, "confidence": self.confidence}


@dataclass
class IntentDecision:
    """
    Output of the intent classifier.

    Attributes:
        top_intent: Highest-ranked intent category.
        confidence: Confidence of the top intent [0-1].
        all_intents: Every returned intent → confidence.
        entities: Entities detected in the message.
        fallback: True when this is the substitute for a failed call.
    """

    top_intent: str = ""
    confidence: float = 0.0
    all_intents: Dict[str, float] = field(default_factory=dict)
    entities: List[IntentEntity] = field(default_factory=list)
    fallback: bool = False

    def entity_categories(self) -> List[str]:
        return [e.category for e in self.entities]

    def to_record(self, query: str) -> IntentRecord:
        return IntentRecord(
            query=query,
            intent=self.top_intent,
            confidence=self.confidence,
            all_intents=dict(self.all_intents),
            entities=[e.to_dict() for e in self.entities],
            fallback=self.fallback,
            ts=time.time(),
        )


def fallback_decision(
    intent: str = FALLBACK_INTENT,
    confidence: float = FALLBACK_CONFIDENCE,
) -> IntentDecision:
    """The fixed decision used whenever classification fails."""
    return IntentDecision(
        top_intent=intent,
        confidence=confidence,
        all_intents={intent: confidence},
        entities=[],
        fallback=True,
    )


def _clamp(value: Any) -> float:
    try:
        score = float(value)
    except (TypeError, ValueError):
        return 0.0
    return min(1.0, max(0.0, score))


class IntentClassifier:
    """
    Classifies user messages with the Azure Language
    ``analyze-conversations`` API.

    Each decision, real or fallback, is published to ``intent_history``
    under the conversation id (last write wins) and bracketed by a
    ``gen_ai.tool.IntentTool`` span.
    """

    def __init__(
        self,
        endpoint: Optional[str] = AZURE_LANGUAGE_ENDPOINT,
        key: Optional[str] = AZURE_LANGUAGE_KEY,
        deployment: Optional[str] = AZURE_LANGUAGE_DEPLOYMENT,
        *,
        api_version: str = INTENT_API_VERSION,
        project_name: str = INTENT_PROJECT_NAME,
        language: str = INTENT_LANGUAGE,
        timeout: float = INTENT_TIMEOUT_SECONDS,
        fallback_intent: str = FALLBACK_INTENT,
        fallback_confidence: float = FALLBACK_CONFIDENCE,
        http_client: Optional[httpx.Client] = None,
        intent_history: Optional[IntentHistory] = None,
        tracer: Optional[ConversationTracer] = None,
    ) -> None:
        self.endpoint = (endpoint or "").rstrip("/")
        self.key = key
        self.deployment = deployment
        self.api_version = api_version
        self.project_name = project_name
        self.language = language
        self.fallback_intent = fallback_intent
        self.fallback_confidence = fallback_confidence
        self.intent_history = intent_history if intent_history is not None else IntentHistory()
        self.tracer = tracer or ConversationTracer()
        self._client = http_client or httpx.Client(timeout=timeout)

        if not (self.endpoint and self.key and self.deployment):
            logger.warning(
                "Intent classifier not configured (AZURE_LANGUAGE_*); "
                "every message will get the fallback intent '{}'.",
                self.fallback_intent,
            )

    def close(self) -> None:
        self._client.close()

    # public entry point

    def classify(
        self,
        text: str,
        language: Optional[str] = None,
        *,
        conversation_id: str = "",
    ) -> IntentDecision:
        """Classify ``text``; returns the fallback decision on any failure."""
        language = language or self.language

        with self.tracer.invocation(
            "tool", conversation_id, INTENT_TOOL_NAME, text, agent_name=ORCHESTRATOR_NAME
        ) as span:
            try:
                payload = self._analyze_conversation(text, language)
                decision = self._parse_response(payload)
                output = json.dumps(payload, ensure_ascii=False)[:2000]
            except Exception as exc:
                logger.error("Intent classification failed, using fallback '{}': {}",
                             self.fallback_intent, exc)
                decision = fallback_decision(self.fallback_intent, self.fallback_confidence)
                output = f"Error: {exc}"

            span.add_metadata(**{
                "gen_ai.intent": decision.top_intent,
                "gen_ai.intent.confidence": decision.confidence,
                "gen_ai.intent.all_intents": json.dumps(decision.all_intents),
                "gen_ai.intent.entities": intent_summary([e.to_dict() for e in decision.entities]),
            })
            span.complete(output, success=not decision.fallback)

        self.intent_history.record(conversation_id, decision.to_record(text))
        logger.debug(
            "Intent for {}: {} ({:.2f}), entities={}",
            conversation_id or "-",
            decision.top_intent,
            decision.confidence,
            decision.entity_categories(),
        )
        return decision

    # HTTP

    def _analyze_conversation(self, text: str, language: str) -> Any:
        if not (self.endpoint and self.key and self.deployment):
            raise RuntimeError("intent classifier is not configured")

        url = f"{self.endpoint}/language/:analyze-conversations"
        body = {
            "kind": "Conversation",
            "analysisInput": {
                "conversationItem": {
                    "id": "user1",
                    "text": text,
                    "modality": "text",
                    "language": language,
                    "participantId": "user1",
                }
            },
            "parameters": {
                "projectName": self.project_name,
                "verbose": True,
                "deploymentName": self.deployment,
                "stringIndexType": "TextElement_V8",
            },
        }
        response = self._client.post(
            url,
            params={"api-version": self.api_version},
            headers={"Ocp-Apim-Subscription-Key": self.key},
            json=body,
        )
        response.raise_for_status()
        if not response.text.strip():
            raise ValueError("Empty response received from the API")
        return response.json()

    # parsing

    @staticmethod
    def _parse_response(payload: Any) -> IntentDecision:
        """
        Extract intents and entities from the API payload.

        A payload without ``result.prediction`` is malformed and raises
        ``ValueError``; missing pieces inside the prediction become
        empty/zero values instead.
        """
        result = payload.get("result") if isinstance(payload, dict) else None
        prediction = result.get("prediction") if isinstance(result, dict) else None
        if not isinstance(prediction, dict):
            raise ValueError("payload has no result.prediction object")

        top_intent = prediction.get("topIntent") or ""
        if not isinstance(top_intent, str):
            top_intent = str(top_intent)

        all_intents: Dict[str, float] = {}
        for item in prediction.get("intents") or []:
            if not isinstance(item, dict) or "category" not in item:
                continue
            all_intents[str(item["category"])] = _clamp(item.get("confidenceScore"))

        entities: List[IntentEntity] = []
        for item in prediction.get("entities") or []:
            if not isinstance(item, dict):
                continue
            entities.append(
                IntentEntity(
                    category=str(item.get("category") or ""),
                    text=str(item.get("text") or ""),
                    confidence=_clamp(item.get("confidenceScore")),
                )
            )

        return IntentDecision(
            top_intent=top_intent,
            confidence=all_intents.get(top_intent, 0.0),
            all_intents=all_intents,
            entities=entities,
        )
