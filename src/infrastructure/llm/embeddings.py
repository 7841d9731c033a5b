"""
Embedding model provider for document retrieval.

Routes through OpenRouter when PROVIDER=openrouter, otherwise direct OpenAI.
"""

from typing import Any
from langchain_openai import OpenAIEmbeddings

from infrastructure.config import EMBEDDING_MODEL, PROVIDER, OPENROUTER_BASE_URL, get_api_key


def get_default_embeddings(**kwargs: Any) -> OpenAIEmbeddings:
    """
    Get an OpenAIEmbeddings instance configured for the active provider.

    The model must match the one the document collection was indexed with.
    """
    llm_kwargs: dict[str, Any] = dict(model=EMBEDDING_MODEL, **kwargs)

    if PROVIDER == "openrouter":
        llm_kwargs["openai_api_base"] = OPENROUTER_BASE_URL
        llm_kwargs["openai_api_key"] = get_api_key("openrouter")

    return OpenAIEmbeddings(**llm_kwargs)
