"""
Conversation memory schemas.

Dataclasses for transcript entries and the per-conversation intent record.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal

Role = Literal["system", "user", "assistant"]

ROLES = ("system", "user", "assistant")


@dataclass(frozen=True)
class ChatMessage:
    """
    A single transcript entry.

    Frozen: entries are never edited once appended.
    """
    role: Role
    content: str

    def __post_init__(self) -> None:
        if self.role not in ROLES:
            raise ValueError(f"Unknown role: {self.role!r}")

    def to_dict(self) -> Dict[str, str]:
        """Convert to the ``{"role", "content"}`` shape chat models accept."""
        return {"role": self.role, "content": self.content}


@dataclass
class IntentRecord:
    """
    The last intent decision published for a conversation.

    Mirrors the decision plus the query that produced it, so telemetry can
    show both.  ``fallback`` is True when the classifier call failed.
    """
    query: str
    intent: str
    confidence: float
    all_intents: Dict[str, float] = field(default_factory=dict)
    entities: List[Dict[str, Any]] = field(default_factory=list)
    fallback: bool = False
    ts: float = 0.0  # epoch seconds

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "query": self.query,
            "intent": self.intent,
            "confidence": self.confidence,
            "all_intents": dict(self.all_intents),
            "entities": list(self.entities),
            "fallback": self.fallback,
            "ts": self.ts,
        }
