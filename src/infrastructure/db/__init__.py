"""
Retrieval backend for the FAQ handler.

Qdrant holds the embedded chunks of the insurance policy documents.
"""

from .qdrant_client import (
    get_qdrant_client,
    collection_exists,
    search_documents,
)

__all__ = [
    "get_qdrant_client",
    "collection_exists",
    "search_documents",
]
