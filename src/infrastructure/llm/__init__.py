"""
LLM provider wrappers.

  get_chat_llm()           → chat model shared by the handlers
  get_default_embeddings() → query embeddings for document retrieval
"""

from .llm_provider import get_chat_llm
from .embeddings import get_default_embeddings

__all__ = [
    "get_chat_llm",
    "get_default_embeddings",
]
