"""
Conversation routing engine - the core agent module.

Public API:
    build_agent()        → AgentOrchestrator (fully wired, ready to chat)
    AgentOrchestrator    → runs one turn: classify → route → dispatch → compose
    TurnResult           → result dataclass
    IntentClassifier     → intent classification with fallback
    IntentDecision       → classification result dataclass
    RoutingPolicy        → intent/entity → handler table
    HandlerRegistry      → name → handler table
    HandlerDispatcher    → invokes handlers, records usage
"""

from .orchestrator import AgentOrchestrator, TurnResult, build_agent
from .registry import (
    DuplicateHandlerError,
    Handler,
    HandlerDispatcher,
    HandlerRegistry,
    UnknownHandlerError,
)
from .router import IntentClassifier, IntentDecision, IntentEntity
from .routing_policy import RoutingPlan, RoutingPolicy

__all__ = [
    "AgentOrchestrator",
    "DuplicateHandlerError",
    "Handler",
    "HandlerDispatcher",
    "HandlerRegistry",
    "IntentClassifier",
    "IntentDecision",
    "IntentEntity",
    "RoutingPlan",
    "RoutingPolicy",
    "TurnResult",
    "UnknownHandlerError",
    "build_agent",
]
