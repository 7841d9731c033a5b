"""
Chat LLM provider.

Every handler talks to the same chat model; ``_build_llm`` resolves the
provider (OpenRouter, Groq or OpenAI direct) from config/param.yaml.
"""

from typing import Optional, Any
from langchain_openai import ChatOpenAI

from infrastructure.config import (
    CHAT_MODEL,
    CHAT_PROVIDER,
    GROQ_BASE_URL,
    LLM_MAX_TOKENS,
    LLM_TIMEOUT_SECONDS,
    OPENROUTER_BASE_URL,
    get_api_key,
)


def _build_llm(
    model: str,
    provider: str,
    temperature: float = 0,
    max_tokens: Optional[int] = None,
    timeout: Optional[float] = None,
    **kwargs: Any,
) -> ChatOpenAI:
    """Internal factory - builds a ChatOpenAI for any provider."""
    llm_kwargs: dict[str, Any] = dict(
        model=model,
        temperature=temperature,
        max_tokens=max_tokens,
        timeout=timeout,
        **kwargs,
    )

    if provider == "openrouter":
        llm_kwargs["openai_api_base"] = OPENROUTER_BASE_URL
        llm_kwargs["openai_api_key"] = get_api_key("openrouter")
    elif provider == "groq":
        llm_kwargs["openai_api_base"] = GROQ_BASE_URL
        llm_kwargs["openai_api_key"] = get_api_key("groq")
    elif provider == "openai":
        llm_kwargs["openai_api_key"] = get_api_key("openai")

    return ChatOpenAI(**llm_kwargs)


def get_chat_llm(temperature: float = 0, **kwargs: Any) -> ChatOpenAI:
    """LLM behind the FAQ and admin handlers.

    Tool calling (the admin handler's confirmation e-mail) requires a
    model with function-calling support.
    """
    kwargs.setdefault("max_tokens", LLM_MAX_TOKENS)
    kwargs.setdefault("timeout", LLM_TIMEOUT_SECONDS)
    return _build_llm(CHAT_MODEL, CHAT_PROVIDER, temperature=temperature, **kwargs)
