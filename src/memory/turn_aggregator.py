"""
Turn aggregator - side-channel facts collected while a turn runs.

Handlers and their tools report which handlers ran and which documents
they cited.  Those facts belong to exactly one turn of one conversation:
``TurnAggregator`` keeps a separate ``TurnAccumulator`` per in-flight
conversation, created when the turn begins and discarded when it is
drained.  There is no process-wide accumulator.
"""

import threading
from typing import Dict, Iterable, List, Tuple

from loguru import logger


class TurnAccumulator:
    """
    Facts of a single turn.

    ``handlers_used`` keeps call order and duplicates; ``documents_cited``
    keeps first-citation order and suppresses duplicates.
    """

    def __init__(self, conversation_id: str) -> None:
        self.conversation_id = conversation_id
        self._handlers_used: List[str] = []
        self._documents_cited: Dict[str, None] = {}
        self._lock = threading.Lock()

    def __repr__(self) -> str:
        return (
            f"TurnAccumulator({self.conversation_id!r}, "
            f"handlers={len(self._handlers_used)}, documents={len(self._documents_cited)})"
        )

    def record_handler_used(self, name: str) -> None:
        with self._lock:
            self._handlers_used.append(name)

    def record_documents_cited(self, titles: Iterable[str]) -> None:
        """Add each non-blank, trimmed title; blanks are ignored."""
        cleaned = [t.strip() for t in titles or () if t and t.strip()]
        if not cleaned:
            return
        with self._lock:
            for title in cleaned:
                self._documents_cited.setdefault(title, None)

    def peek(self) -> Tuple[List[str], List[str]]:
        with self._lock:
            return list(self._handlers_used), list(self._documents_cited)

    def drain(self) -> Tuple[List[str], List[str]]:
        """Atomically read and clear both collections."""
        with self._lock:
            handlers, documents = self._handlers_used, list(self._documents_cited)
            self._handlers_used = []
            self._documents_cited = {}
        return handlers, documents


class TurnAggregator:
    """
    Registry of per-conversation accumulators for the turns in flight.

    At most one turn per conversation runs at a time (the chat service
    serialises them), so the conversation id is enough to key a turn.
    """

    def __init__(self) -> None:
        self._turns: Dict[str, TurnAccumulator] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._turns)

    def begin(self, conversation_id: str) -> TurnAccumulator:
        """Start a fresh accumulator; leftovers of an undrained turn are dropped."""
        accumulator = TurnAccumulator(conversation_id)
        with self._lock:
            stale = self._turns.get(conversation_id)
            self._turns[conversation_id] = accumulator
        if stale is not None:
            logger.warning("Discarding undrained turn state for {}: {}", conversation_id, stale)
        return accumulator

    def get(self, conversation_id: str) -> TurnAccumulator:
        """Accumulator of the running turn; ``KeyError`` if none was begun."""
        with self._lock:
            return self._turns[conversation_id]

    def is_active(self, conversation_id: str) -> bool:
        with self._lock:
            return conversation_id in self._turns

    def drain(self, conversation_id: str) -> Tuple[List[str], List[str]]:
        """
        Read, clear and discard the turn's accumulator.

        A second drain for the same turn returns two empty lists.
        """
        with self._lock:
            accumulator = self._turns.pop(conversation_id, None)
        if accumulator is None:
            return [], []
        return accumulator.drain()

    def discard(self, conversation_id: str) -> None:
        with self._lock:
            self._turns.pop(conversation_id, None)
