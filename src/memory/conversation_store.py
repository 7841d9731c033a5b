"""
Conversation store - in-process transcripts keyed by conversation id.

Each conversation owns one top-level transcript (seeded with the system
message) and one transcript per handler that has answered in it, so a
handler only ever sees its own sub-dialogue.

Retention: conversations idle for longer than ``ttl_seconds`` are
evicted lazily on the next store access, and at most
``max_conversations`` are kept (least recently used goes first).
Conversations pinned by a running turn are skipped, so the cap can be
exceeded briefly while turns are in flight.
"""

import threading
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

from loguru import logger

from infrastructure.config import (
    CONVERSATION_TTL_SECONDS,
    MAX_CONVERSATIONS,
    SYSTEM_MESSAGE,
)
from memory.schemas import ChatMessage, Role


class Transcript:
    """
    Append-only, ordered list of chat messages.

    Appends are thread-safe.  ``rollback_to`` only exists for the turn
    journal, which drops the entries of a turn that did not commit.
    """

    def __init__(self, conversation_id: str, handler_name: Optional[str] = None) -> None:
        self.conversation_id = conversation_id
        self.handler_name = handler_name
        self._messages: List[ChatMessage] = []
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._messages)

    def __repr__(self) -> str:
        scope = self.handler_name or "top-level"
        return f"Transcript({self.conversation_id!r}, {scope}, {len(self)} messages)"

    @property
    def messages(self) -> Tuple[ChatMessage, ...]:
        with self._lock:
            return tuple(self._messages)

    def append(self, role: Role, content: str) -> ChatMessage:
        message = ChatMessage(role=role, content=content)
        with self._lock:
            self._messages.append(message)
        return message

    def append_system(self, content: str) -> ChatMessage:
        return self.append("system", content)

    def append_user(self, content: str) -> ChatMessage:
        return self.append("user", content)

    def append_assistant(self, content: str) -> ChatMessage:
        return self.append("assistant", content)

    def last_user_message(self) -> Optional[str]:
        with self._lock:
            for message in reversed(self._messages):
                if message.role == "user":
                    return message.content
        return None

    def to_dicts(self) -> List[Dict[str, str]]:
        """Messages in the ``[{"role", "content"}]`` shape chat models accept."""
        return [m.to_dict() for m in self.messages]

    def format(self) -> str:
        """``role: content`` lines, for tracing."""
        return "\n".join(f"{m.role}: {m.content}" for m in self.messages)

    def rollback_to(self, length: int) -> int:
        """Drop every entry after ``length``; returns how many were dropped."""
        with self._lock:
            dropped = max(0, len(self._messages) - length)
            if dropped:
                del self._messages[length:]
        return dropped


@dataclass
class _Conversation:
    transcript: Transcript
    handler_transcripts: Dict[str, Transcript] = field(default_factory=dict)
    last_used: float = 0.0


class ConversationStore:
    """
    Maps conversation ids to their transcripts.

    The store lock only guards the id → conversation map; transcripts
    carry their own lock, so unrelated conversations never wait on each
    other while appending.
    """

    def __init__(
        self,
        system_message: str = SYSTEM_MESSAGE,
        ttl_seconds: Optional[float] = CONVERSATION_TTL_SECONDS,
        max_conversations: Optional[int] = MAX_CONVERSATIONS,
        clock: Callable[[], float] = time.monotonic,
        on_evict: Optional[Callable[[str], None]] = None,
    ) -> None:
        self.system_message = system_message
        self.ttl_seconds = ttl_seconds
        self.max_conversations = max_conversations
        self._clock = clock
        self._on_evict = on_evict
        self._conversations: "OrderedDict[str, _Conversation]" = OrderedDict()
        self._pins: Dict[str, int] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._conversations)

    def __contains__(self, conversation_id: str) -> bool:
        return self.has_conversation(conversation_id)

    # turn pinning

    def pin(self, conversation_id: str) -> None:
        """Exempt a conversation from eviction while a turn is running on it."""
        with self._lock:
            self._pins[conversation_id] = self._pins.get(conversation_id, 0) + 1

    def unpin(self, conversation_id: str) -> None:
        with self._lock:
            count = self._pins.get(conversation_id, 0) - 1
            if count > 0:
                self._pins[conversation_id] = count
            else:
                self._pins.pop(conversation_id, None)

    def is_pinned(self, conversation_id: str) -> bool:
        with self._lock:
            return conversation_id in self._pins

    # lookup / creation

    def open(self, conversation_id: str) -> Tuple[Transcript, bool]:
        """Return the top-level transcript and whether it was just created."""
        with self._lock:
            conversation, created = self._get_or_create(conversation_id)
            transcript = conversation.transcript
            evicted = self._evict(conversation_id)
        self._notify_evicted(evicted)
        if created:
            logger.info("Conversation started: {}", conversation_id)
        return transcript, created

    def get_or_create_transcript(self, conversation_id: str) -> Transcript:
        return self.open(conversation_id)[0]

    def get_or_create_handler_transcript(self, conversation_id: str, handler_name: str) -> Transcript:
        """
        Handler transcript of a conversation, created on first use.

        Raises ``KeyError`` if the conversation is pinned by a running turn
        but no longer stored, instead of silently starting a new one.
        """
        with self._lock:
            if conversation_id in self._pins and conversation_id not in self._conversations:
                raise KeyError(f"Conversation '{conversation_id}' was removed during a turn")
            conversation, _ = self._get_or_create(conversation_id)
            transcript = conversation.handler_transcripts.get(handler_name)
            if transcript is None:
                transcript = Transcript(conversation_id, handler_name)
                conversation.handler_transcripts[handler_name] = transcript
            evicted = self._evict(conversation_id)
        self._notify_evicted(evicted)
        return transcript

    def has_conversation(self, conversation_id: str) -> bool:
        with self._lock:
            return conversation_id in self._conversations

    def conversation_ids(self) -> List[str]:
        with self._lock:
            return list(self._conversations)

    # appends

    @staticmethod
    def append_user(transcript: Transcript, text: str) -> ChatMessage:
        return transcript.append_user(text)

    @staticmethod
    def append_assistant(transcript: Transcript, text: str) -> ChatMessage:
        return transcript.append_assistant(text)

    # lifecycle

    def reset(self, conversation_id: str) -> bool:
        """Forget a conversation entirely; True if it existed."""
        with self._lock:
            removed = self._conversations.pop(conversation_id, None) is not None
        if removed:
            logger.info("Conversation reset: {}", conversation_id)
            self._notify_evicted([conversation_id])
        return removed

    def evict_expired(self) -> List[str]:
        with self._lock:
            evicted = self._evict()
        self._notify_evicted(evicted)
        return evicted

    # internals (store lock held)

    def _get_or_create(self, conversation_id: str) -> Tuple[_Conversation, bool]:
        now = self._clock()
        conversation = self._conversations.get(conversation_id)
        created = conversation is None
        if created:
            transcript = Transcript(conversation_id)
            transcript.append_system(self.system_message)
            conversation = _Conversation(transcript=transcript)
            self._conversations[conversation_id] = conversation
        conversation.last_used = now
        self._conversations.move_to_end(conversation_id)
        return conversation, created

    def _evict(self, keep: Optional[str] = None) -> List[str]:
        # Pinned conversations have a turn in flight and ``keep`` is the one
        # being accessed; neither is evicted
        evicted: List[str] = []
        if self.ttl_seconds is not None:
            cutoff = self._clock() - self.ttl_seconds
            # Ordered by last use, so expired entries are at the front
            for conversation_id, conversation in list(self._conversations.items()):
                if conversation.last_used >= cutoff:
                    break
                if conversation_id in self._pins:
                    continue
                del self._conversations[conversation_id]
                evicted.append(conversation_id)
        if self.max_conversations is not None:
            excess = len(self._conversations) - self.max_conversations
            for conversation_id in list(self._conversations):
                if excess <= 0:
                    break
                if conversation_id in self._pins or conversation_id == keep:
                    continue
                del self._conversations[conversation_id]
                evicted.append(conversation_id)
                excess -= 1
        if evicted:
            logger.debug("Evicted {} conversation(s)", len(evicted))
        return evicted

    def _notify_evicted(self, conversation_ids: List[str]) -> None:
        if self._on_evict is None:
            return
        for conversation_id in conversation_ids:
            self._on_evict(conversation_id)
