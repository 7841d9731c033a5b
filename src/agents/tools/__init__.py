"""
Handler tools - document search (FAQ) and confirmation e-mail (admin).

Both receive the turn context explicitly; nothing is read from
module-level "current chat" state.
"""

from .email_tool import EmailTool
from .search_tool import QdrantRetriever, Retriever, SearchTool

__all__ = [
    "EmailTool",
    "QdrantRetriever",
    "Retriever",
    "SearchTool",
]
