"""
Routing policy - static precedence table from intent decision to handlers.

Precedence:
  1. Entity override: an entity whose category contains an override key
     (``afspraak``, ``complaint`` …) routes to that handler alone.
  2. Intent rule: the top intent's handler, followed by the handlers of
     strong secondary intents.
  3. Default handler.

The policy is a pure function of (top intent, all intents, entities), so
identical decisions always produce identical plans.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Tuple

from agents.router import IntentDecision
from infrastructure.config import (
    DEFAULT_HANDLER,
    ENTITY_OVERRIDES,
    INTENT_HANDLERS,
    SECONDARY_INTENT_THRESHOLD,
)


@dataclass(frozen=True)
class RoutingPlan:
    """
    Handlers to dispatch to, in order.

    Attributes:
        handlers: Handler names, primary first, no duplicates.
        rule: Which rule decided (``entity`` | ``intent`` | ``default``).
        reason: One-line explanation for logs.
    """

    handlers: Tuple[str, ...]
    rule: str
    reason: str = ""

    @property
    def primary(self) -> str:
        return self.handlers[0]


@dataclass
class RoutingPolicy:
    """Maps an ``IntentDecision`` to a ``RoutingPlan``."""

    intent_handlers: Mapping[str, str] = field(default_factory=lambda: dict(INTENT_HANDLERS))
    entity_overrides: Mapping[str, str] = field(default_factory=lambda: dict(ENTITY_OVERRIDES))
    default_handler: str = DEFAULT_HANDLER
    secondary_intent_threshold: Optional[float] = SECONDARY_INTENT_THRESHOLD

    def route(self, decision: IntentDecision) -> RoutingPlan:
        override = self._entity_override(decision)
        if override is not None:
            handler, category = override
            return RoutingPlan(
                handlers=(handler,),
                rule="entity",
                reason=f"entity '{category}' forces {handler}",
            )

        primary = self.intent_handlers.get(decision.top_intent)
        if primary is None:
            return RoutingPlan(
                handlers=(self.default_handler,),
                rule="default",
                reason=f"no rule for intent '{decision.top_intent}'",
            )

        handlers = [primary]
        for intent in self._secondary_intents(decision):
            handler = self.intent_handlers[intent]
            if handler not in handlers:
                handlers.append(handler)

        return RoutingPlan(
            handlers=tuple(handlers),
            rule="intent",
            reason=f"intent '{decision.top_intent}' ({decision.confidence:.2f})",
        )

    def _entity_override(self, decision: IntentDecision) -> Optional[Tuple[str, str]]:
        # Table order decides between overrides, not entity order
        categories = [e.category.lower() for e in decision.entities if e.category]
        for key, handler in self.entity_overrides.items():
            needle = key.lower()
            for category in categories:
                if needle in category:
                    return handler, category
        return None

    def _secondary_intents(self, decision: IntentDecision) -> List[str]:
        if self.secondary_intent_threshold is None:
            return []
        candidates: Dict[str, float] = {
            intent: score
            for intent, score in decision.all_intents.items()
            if intent != decision.top_intent
            and intent in self.intent_handlers
            and score >= self.secondary_intent_threshold
        }
        return sorted(candidates, key=lambda intent: (-candidates[intent], intent))
