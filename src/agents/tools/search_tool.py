"""
Search Tool -- document retrieval for the FAQ handler.

Architecture:
    Query --> Retriever (Qdrant vector search over policy documents)
          --> distinct titles recorded as the turn's cited documents
          --> passages returned for grounding the answer

The retriever is a protocol so any backend returning ``title`` +
``chunk_text`` dicts can stand in for Qdrant.
"""

from loguru import logger
from typing import Any, Dict, List, Optional, Protocol

from infrastructure.config import SIMILARITY_THRESHOLD, TOP_K_RESULTS
from infrastructure.observability import ConversationTracer
from memory.turn_context import TurnContext

SEARCH_TOOL_NAME = "SearchTool"


class Retriever(Protocol):
    def search(self, query: str, top_k: int) -> List[Dict[str, Any]]:
        """Ranked passages, each with at least ``title`` and ``chunk_text``."""
        ...


class QdrantRetriever:
    """Embeds the query and runs a similarity search in Qdrant."""

    def __init__(self, embedder: Any, score_threshold: float = SIMILARITY_THRESHOLD) -> None:
        self.embedder = embedder
        self.score_threshold = score_threshold

    def search(self, query: str, top_k: int) -> List[Dict[str, Any]]:
        from infrastructure.db.qdrant_client import search_documents

        query_vec = self.embedder.embed_query(query)
        return search_documents(
            query_vector=query_vec,
            top_k=top_k,
            score_threshold=self.score_threshold,
        )


class SearchTool:
    """
    Retrieval tool used by the FAQ handler.

    Every title found is reported to the turn's accumulator through the
    ``TurnContext`` it is called with.
    """

    def __init__(
        self,
        retriever: Retriever,
        top_k: int = TOP_K_RESULTS,
        tracer: Optional[ConversationTracer] = None,
        agent_name: str = "FAQAgent",
    ) -> None:
        self.retriever = retriever
        self.top_k = top_k
        self.tracer = tracer or ConversationTracer()
        self.agent_name = agent_name

    def search(
        self,
        query: str,
        context: TurnContext,
        top_k: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """
        Retrieve passages for ``query``.

        Returns an empty list when the backend fails; the FAQ handler
        then answers without grounding.
        """
        with self.tracer.invocation(
            "tool", context.conversation_id, SEARCH_TOOL_NAME, query, agent_name=self.agent_name
        ) as span:
            try:
                results = self.retriever.search(query, top_k or self.top_k)
            except Exception as exc:
                logger.error("Document search failed: {}", exc)
                span.complete(f"Error: {exc}", success=False)
                return []

            titles = self.document_titles(results)
            context.accumulator.record_documents_cited(titles)

            span.add_metadata(documents_found=len(titles), document_titles=titles)
            span.complete(f"{len(results)} passages from {len(titles)} documents")

        logger.info("Search '{}' → {} passages ({})", query[:80], len(results), ", ".join(titles) or "none")
        return results

    @staticmethod
    def document_titles(results: List[Dict[str, Any]]) -> List[str]:
        """Distinct non-blank titles in rank order."""
        titles: List[str] = []
        for hit in results:
            title = (hit.get("title") or "").strip()
            if title and title not in titles:
                titles.append(title)
        return titles
