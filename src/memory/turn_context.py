"""
Turn context - everything a handler or tool needs to know about the
turn it runs in, passed explicitly down the dispatch call chain.
"""

import uuid
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from loguru import logger

from memory.conversation_store import Transcript
from memory.intent_history import IntentHistory
from memory.schemas import IntentRecord
from memory.turn_aggregator import TurnAccumulator


@dataclass
class TurnContext:
    """
    One turn of one conversation.

    Attributes:
        conversation_id: Conversation the turn belongs to.
        user_id: Caller identity (``anonymous`` by default).
        accumulator: Where handlers and tools record side-channel facts.
        response_id: ``<conversation_id>/<uuid4>``, used by telemetry.

    The context also journals every transcript it touches: unless the
    turn commits, ``rollback`` truncates each one back to the length it
    had when first touched, so a failed or interrupted turn leaves no
    partial entries behind. The intent record the turn replaced is
    restored the same way.
    """

    conversation_id: str
    accumulator: TurnAccumulator
    user_id: str = "anonymous"
    response_id: str = ""
    committed: bool = False
    _journal: Dict[int, int] = field(default_factory=dict, repr=False)
    _touched: List[Transcript] = field(default_factory=list, repr=False)
    _intent_history: Optional[IntentHistory] = field(default=None, repr=False)
    _previous_intent: Optional[IntentRecord] = field(default=None, repr=False)

    def __post_init__(self) -> None:
        if not self.response_id:
            self.response_id = f"{self.conversation_id}/{uuid.uuid4()}"

    def touch(self, transcript: Transcript) -> Transcript:
        """Remember the transcript's length before this turn writes to it."""
        key = id(transcript)
        if key not in self._journal:
            self._journal[key] = len(transcript)
            self._touched.append(transcript)
        return transcript

    def track_intent(self, history: IntentHistory) -> None:
        """Remember the conversation's intent record before classification."""
        self._intent_history = history
        self._previous_intent = history.get(self.conversation_id)

    def commit(self) -> None:
        self.committed = True
        self._journal.clear()
        self._touched.clear()
        self._intent_history = None

    def rollback(self) -> int:
        """Undo this turn's appends; returns the number of entries dropped."""
        if self.committed:
            return 0
        dropped = 0
        for transcript in self._touched:
            dropped += transcript.rollback_to(self._journal[id(transcript)])
        self._journal.clear()
        self._touched.clear()
        self._restore_intent()
        if dropped:
            logger.warning(
                "Rolled back {} transcript entr{} for {}",
                dropped, "y" if dropped == 1 else "ies", self.conversation_id,
            )
        return dropped

    def _restore_intent(self) -> None:
        history, self._intent_history = self._intent_history, None
        if history is None:
            return
        if self._previous_intent is None:
            history.clear(self.conversation_id)
        else:
            history.record(self.conversation_id, self._previous_intent)
