"""
Qdrant client for the insurance-document collection.

The collection is populated out of band; this module only connects and
searches.  Each point payload carries at least ``title`` (the source
document, e.g. ``PolicyA.pdf``) and ``chunk_text``.
"""

from loguru import logger
from typing import Any, Dict, List, Optional

from qdrant_client import QdrantClient

from infrastructure.config import (
    QDRANT_API_KEY,
    QDRANT_URL,
    QDRANT_COLLECTION_NAME,
)
# ---------------------------------------------------------------------------
# Singleton client
# ---------------------------------------------------------------------------

_qdrant_client: Optional[QdrantClient] = None


def get_qdrant_client() -> QdrantClient:
    """
    Return a singleton QdrantClient.

    Requires QDRANT_URL in .env (QDRANT_API_KEY for Qdrant Cloud).
    """
    global _qdrant_client
    if _qdrant_client is not None:
        return _qdrant_client

    if not QDRANT_URL:
        raise RuntimeError(
            "QDRANT_URL is not set.  Add it to your .env file.\n"
            "Example: QDRANT_URL=https://xxxxx.us-east.aws.cloud.qdrant.io"
        )

    _qdrant_client = QdrantClient(
        url=QDRANT_URL,
        api_key=QDRANT_API_KEY,
        timeout=30,
    )
    logger.info("Connected to Qdrant at {}", QDRANT_URL)
    return _qdrant_client


def collection_exists(collection_name: str = QDRANT_COLLECTION_NAME) -> bool:
    """Check whether the document collection exists."""
    client = get_qdrant_client()
    existing = [c.name for c in client.get_collections().collections]
    return collection_name in existing


# ---------------------------------------------------------------------------
# Search
# ---------------------------------------------------------------------------


def search_documents(
    query_vector: List[float],
    top_k: int = 5,
    score_threshold: float = 0.0,
    collection_name: str = QDRANT_COLLECTION_NAME,
) -> List[Dict[str, Any]]:
    """
    Semantic search over the document collection.

    Returns:
        List of dicts with keys: title, chunk_text, url, score
    """
    client = get_qdrant_client()

    response = client.query_points(
        collection_name=collection_name,
        query=query_vector,
        limit=top_k,
        score_threshold=score_threshold,
    )

    results = []
    for hit in response.points:
        payload = hit.payload or {}
        results.append(
            {
                "title": payload.get("title", ""),
                "chunk_text": payload.get("chunk_text", payload.get("chunk", "")),
                "url": payload.get("url", ""),
                "score": hit.score,
            }
        )
    return results
