"""
Conversation memory - transcripts, turn-scoped facts, intent history.

Memory types:
  - Transcripts: top-level and per-handler message history (ConversationStore)
  - Turn facts: handlers used + documents cited during one turn (TurnAggregator)
  - Intent history: the last intent decision per conversation (IntentHistory)

Everything lives in process memory; nothing survives a restart.
"""

from .schemas import ChatMessage, IntentRecord, Role
from .conversation_store import ConversationStore, Transcript
from .turn_aggregator import TurnAccumulator, TurnAggregator
from .turn_context import TurnContext
from .intent_history import IntentHistory

__all__ = [
    # Schemas
    "ChatMessage",
    "IntentRecord",
    "Role",
    # Stores
    "ConversationStore",
    "Transcript",
    "TurnAccumulator",
    "TurnAggregator",
    "TurnContext",
    "IntentHistory",
]
