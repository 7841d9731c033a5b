"""
Infrastructure layer - pure plumbing (LLM, retrieval client, config, telemetry).

No business logic here. Just connections, clients, and configuration loading.
"""

from .log import setup_logging
from .observability import ConversationTracer, observe, flush, get_langfuse

__all__ = [
    "ConversationTracer",
    "setup_logging",
    "observe",
    "flush",
    "get_langfuse",
]
