"""
Chat service - the request/response boundary around the orchestrator.

Pipeline:
    ChatRequest --> validate (blank message = 400)
                --> assign chatId (new uuid4 when missing)
                --> per-conversation lock (one turn at a time per chatId)
                --> AgentOrchestrator.run_turn
                --> references: cited documents, else the reply's "References:" line
                --> ChatResponse (500 + error text if the turn raised)
"""

import threading
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from loguru import logger

from agents.orchestrator import AgentOrchestrator
from services.chat_service.references import extract_references


class InvalidChatRequest(ValueError):
    """The request cannot be processed as sent."""


@dataclass
class ChatRequest:
    message: str
    chat_id: Optional[str] = None
    user_id: str = "anonymous"

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "ChatRequest":
        return cls(
            message=payload.get("message") or "",
            chat_id=payload.get("chatId") or None,
            user_id=payload.get("userId") or "anonymous",
        )

    def validate(self) -> None:
        if not isinstance(self.message, str) or not self.message.strip():
            raise InvalidChatRequest("Message must not be empty.")


@dataclass
class ChatResponse:
    message: str
    agents_used: List[str] = field(default_factory=list)
    references: List[str] = field(default_factory=list)
    chat_id: str = ""
    status_code: int = 200

    def to_dict(self) -> Dict[str, Any]:
        return {
            "message": self.message,
            "agentsUsed": list(self.agents_used),
            "references": list(self.references),
            "chatId": self.chat_id,
        }


class _ConversationLocks:
    """Ref-counted lock per conversation id; entries vanish when unused."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: Dict[str, List[Any]] = {}

    def acquire(self, conversation_id: str) -> threading.Lock:
        with self._guard:
            entry = self._locks.setdefault(conversation_id, [threading.Lock(), 0])
            entry[1] += 1
        entry[0].acquire()
        return entry[0]

    def release(self, conversation_id: str) -> None:
        with self._guard:
            entry = self._locks[conversation_id]
            entry[0].release()
            entry[1] -= 1
            if entry[1] == 0:
                del self._locks[conversation_id]

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


class ChatService:
    """
    Runs chat requests through an ``AgentOrchestrator``.

    Distinct conversations are processed in parallel; turns of the same
    conversation are serialised.
    """

    def __init__(self, orchestrator: AgentOrchestrator) -> None:
        self.orchestrator = orchestrator
        self._locks = _ConversationLocks()

    def handle(self, request: ChatRequest) -> ChatResponse:
        chat_id = request.chat_id or str(uuid.uuid4())

        try:
            request.validate()
        except InvalidChatRequest as exc:
            logger.warning("Rejected request for {}: {}", chat_id, exc)
            return ChatResponse(message=str(exc), chat_id=chat_id, status_code=400)

        start = time.time()
        with logger.contextualize(chat_id=chat_id):
            self._locks.acquire(chat_id)
            try:
                result = self.orchestrator.run_turn(chat_id, request.message, request.user_id)
            except Exception as exc:
                logger.exception("Turn failed: {}", exc)
                return ChatResponse(
                    message=f"An error occurred: {exc}",
                    chat_id=chat_id,
                    status_code=500,
                )
            finally:
                self._locks.release(chat_id)

            references = result.documents_cited or extract_references(result.reply_text)
            logger.info(
                "Turn done in {:.0f}ms: in={} chars, out={} chars, agents={}, references={}",
                (time.time() - start) * 1000,
                len(request.message),
                len(result.reply_text),
                result.handlers_used,
                references,
            )

        return ChatResponse(
            message=result.reply_text,
            agents_used=result.handlers_used,
            references=references,
            chat_id=chat_id,
        )

    def handle_dict(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Dict-in, dict-out variant of ``handle`` (camelCase keys)."""
        response = self.handle(ChatRequest.from_dict(payload))
        return {**response.to_dict(), "statusCode": response.status_code}

    def reset(self, chat_id: str) -> bool:
        self._locks.acquire(chat_id)
        try:
            return self.orchestrator.reset(chat_id)
        finally:
            self._locks.release(chat_id)
