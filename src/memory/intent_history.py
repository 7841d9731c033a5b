"""
Intent history - the latest intent decision per conversation.

Last write wins: each classification replaces the previous record of
that conversation, nothing accumulates.
"""

import json
import threading
from typing import Dict, Optional

from memory.schemas import IntentRecord

_EMPTY_JSON = json.dumps({"query": "", "intent": "", "confidence": 0.0})


class IntentHistory:
    """Thread-safe map of conversation id → last ``IntentRecord``."""

    def __init__(self) -> None:
        self._records: Dict[str, IntentRecord] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._records)

    def record(self, conversation_id: str, record: IntentRecord) -> None:
        with self._lock:
            self._records[conversation_id] = record

    def get(self, conversation_id: str) -> Optional[IntentRecord]:
        with self._lock:
            return self._records.get(conversation_id)

    def get_json(self, conversation_id: str) -> str:
        record = self.get(conversation_id)
        if record is None:
            return _EMPTY_JSON
        return json.dumps(record.to_dict(), ensure_ascii=False)

    def clear(self, conversation_id: str) -> None:
        with self._lock:
            self._records.pop(conversation_id, None)
