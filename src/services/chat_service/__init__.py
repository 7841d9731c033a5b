"""
Chat service - request/response boundary for conversation turns.
"""

from .chat_service import ChatRequest, ChatResponse, ChatService, InvalidChatRequest
from .references import extract_references

__all__ = [
    "ChatRequest",
    "ChatResponse",
    "ChatService",
    "InvalidChatRequest",
    "extract_references",
]
