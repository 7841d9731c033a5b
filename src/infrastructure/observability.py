"""
Observability layer - LangFuse v3 integration for tracing and per-turn telemetry.

Provides:
- ``get_langfuse()``          - singleton Langfuse client
- ``fetch_prompt()``          - pull prompts from LangFuse Prompt Management
- ``observe``                 - wrapped decorator for auto-tracing
- ``update_current_trace``    - tag traces with user_id / session_id
- ``update_current_observation`` - attach I/O + metadata to the current span
- ``ConversationTracer``      - the gen_ai.* events and spans of a chat turn
- ``flush()``                 - ensure events are sent before process exit

Configuration:
    .env must contain:
        LANGFUSE_SECRET_KEY
        LANGFUSE_PUBLIC_KEY
        LANGFUSE_BASE_URL   (default: https://cloud.langfuse.com)

    config/param.yaml:
        observability:
          enabled: true

When ``enabled`` is false, or the keys are missing, every decorator
becomes a passthrough and the tracer only logs.
"""

import json
import os
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional

from langfuse import Langfuse
from langfuse import get_client as _get_lf_client
from langfuse import observe as _lf_observe
from loguru import logger

SYSTEM_NAME = "HealthcareAgents"

# ---------------------------------------------------------------------------
# Config flag
# ---------------------------------------------------------------------------

_ENABLED: Optional[bool] = None


def _is_enabled() -> bool:
    """Observability is on when param.yaml enables it and both keys are set."""
    global _ENABLED
    if _ENABLED is not None:
        return _ENABLED
    from infrastructure.config import _get_nested, _PARAMS

    flag = _get_nested(_PARAMS, "observability", "enabled", default=True)
    has_keys = bool(os.getenv("LANGFUSE_SECRET_KEY") and os.getenv("LANGFUSE_PUBLIC_KEY"))
    _ENABLED = bool(flag) and has_keys
    return _ENABLED


# ---------------------------------------------------------------------------
# Singleton LangFuse client
# ---------------------------------------------------------------------------

_langfuse_client: Optional[Langfuse] = None
_initialised = False


def get_langfuse() -> Optional[Langfuse]:
    """
    Return a singleton Langfuse client.

    Returns None if observability is disabled or keys are missing.
    """
    global _langfuse_client, _initialised
    if _initialised:
        return _langfuse_client

    _initialised = True

    if not _is_enabled():
        logger.info("Observability disabled (config flag or LangFuse keys) - tracing off.")
        return None

    base_url = os.getenv("LANGFUSE_BASE_URL", "https://cloud.langfuse.com")
    try:
        _langfuse_client = Langfuse(
            secret_key=os.getenv("LANGFUSE_SECRET_KEY"),
            public_key=os.getenv("LANGFUSE_PUBLIC_KEY"),
            host=base_url,
        )
        logger.info("LangFuse client initialised (host={})", base_url)
    except Exception as exc:
        logger.error("Failed to initialise LangFuse: {}", exc)
        _langfuse_client = None
    return _langfuse_client


# ---------------------------------------------------------------------------
# Prompt Management - fetch from LangFuse with local fallback
# ---------------------------------------------------------------------------


def fetch_prompt(
    name: str,
    *,
    fallback: str,
    cache_ttl_seconds: int = 300,
    **compile_vars: str,
) -> str:
    """
    Fetch a prompt template from **LangFuse Prompt Management**.

    If the prompt exists in LangFuse it is compiled with ``compile_vars``
    (``{{variable}}`` syntax).  Otherwise the local ``fallback`` string
    is used (Python ``{variable}`` syntax).
    """
    client = get_langfuse()

    if client is not None:
        try:
            prompt_obj = client.get_prompt(
                name,
                type="text",
                cache_ttl_seconds=cache_ttl_seconds,
            )
            compiled = prompt_obj.compile(**compile_vars) if compile_vars else prompt_obj.compile()
            logger.debug("LangFuse prompt '{}' loaded (version={})", name, getattr(prompt_obj, "version", "?"))
            return compiled
        except Exception as exc:
            logger.debug(
                "LangFuse prompt '{}' not found or fetch failed: {}. Using local fallback.",
                name,
                exc,
            )

    if compile_vars:
        return fallback.format(**compile_vars)
    return fallback


# ---------------------------------------------------------------------------
# @observe decorator
# ---------------------------------------------------------------------------


def observe(
    *,
    name: Optional[str] = None,
    as_type: Optional[str] = None,
):
    """
    Decorator that wraps ``langfuse.observe``.

    A passthrough when observability is disabled.

    Args:
        name: Span name (defaults to the function name).
        as_type: One of ``"generation"`` | ``None`` (span).
    """
    def _noop_decorator(fn):
        return fn

    if not _is_enabled():
        return _noop_decorator

    kwargs = {}
    if name is not None:
        kwargs["name"] = name
    if as_type is not None:
        kwargs["as_type"] = as_type

    return _lf_observe(**kwargs)


# ---------------------------------------------------------------------------
# Trace & Span Update Helpers (v3 API - uses get_client())
# ---------------------------------------------------------------------------


def update_current_trace(
    *,
    user_id: Optional[str] = None,
    session_id: Optional[str] = None,
    metadata: Optional[dict] = None,
    tags: Optional[list] = None,
) -> None:
    """
    Update the current LangFuse trace with user/session info.

    Safe to call even when tracing is disabled (no-op).
    """
    if not _is_enabled():
        return
    try:
        client = _get_lf_client()
        kwargs = {}
        if user_id is not None:
            kwargs["user_id"] = user_id
        if session_id is not None:
            kwargs["session_id"] = session_id
        if metadata is not None:
            kwargs["metadata"] = metadata
        if tags is not None:
            kwargs["tags"] = tags
        client.update_current_trace(**kwargs)
    except Exception as exc:
        logger.debug("update_current_trace failed (non-critical): {}", exc)


def update_current_observation(
    *,
    input: Optional[str] = None,
    output: Optional[str] = None,
    metadata: Optional[dict] = None,
    usage: Optional[dict] = None,
    model: Optional[str] = None,
) -> None:
    """
    Update the current span/generation with I/O and usage data.

    ``model`` or ``usage`` select a generation update, anything else a
    span update.  Safe to call even when tracing is disabled (no-op).
    """
    if not _is_enabled():
        return
    try:
        client = _get_lf_client()

        if usage is not None or model is not None:
            gen_kwargs = {}
            if input is not None:
                gen_kwargs["input"] = input
            if output is not None:
                gen_kwargs["output"] = output
            if metadata is not None:
                gen_kwargs["metadata"] = metadata
            if model is not None:
                gen_kwargs["model"] = model
            if usage is not None:
                gen_kwargs["usage_details"] = usage
            client.update_current_generation(**gen_kwargs)
            return

        span_kwargs = {}
        if input is not None:
            span_kwargs["input"] = input
        if output is not None:
            span_kwargs["output"] = output
        if metadata is not None:
            span_kwargs["metadata"] = metadata
        if span_kwargs:
            client.update_current_span(**span_kwargs)
    except Exception as exc:
        logger.debug("update_current_observation failed (non-critical): {}", exc)


# ---------------------------------------------------------------------------
# Per-turn conversation telemetry
# ---------------------------------------------------------------------------


def _message_content(role: str, text: str) -> str:
    return json.dumps(
        {"message": {"role": role, "content": {"text": {"value": text}}}},
        ensure_ascii=False,
    )


class Invocation:
    """
    One bracketed handler or tool invocation.

    Created by :meth:`ConversationTracer.invocation`; ``complete`` may be
    called once, later calls are ignored.
    """

    def __init__(self, name: str, chat_id: str, input: str, span: Any = None) -> None:
        self.name = name
        self.chat_id = chat_id
        self.input = input
        self.output: Optional[str] = None
        self.success: Optional[bool] = None
        self.metadata: Dict[str, Any] = {}
        self._span = span

    @property
    def completed(self) -> bool:
        return self.success is not None

    def add_metadata(self, **values: Any) -> None:
        self.metadata.update(values)

    def complete(self, output: str, success: bool = True) -> None:
        if self.completed:
            return
        self.output = output
        self.success = success
        if self._span is None:
            return
        try:
            self._span.update(
                output=output,
                level="DEFAULT" if success else "ERROR",
                status_message=None if success else output,
                metadata={"gen_ai.success": success, **self.metadata},
            )
        except Exception as exc:
            logger.debug("span update failed (non-critical): {}", exc)


class ConversationTracer:
    """
    Emits the ``gen_ai.*`` telemetry of a chat turn to LangFuse.

    Every method is safe to call with tracing disabled; failures inside
    the LangFuse client are logged at DEBUG and never reach the caller.
    """

    def __init__(self, client: Optional[Langfuse] = None) -> None:
        self._client = client

    @classmethod
    def from_config(cls) -> "ConversationTracer":
        return cls(get_langfuse())

    #  events

    def trace_user_message(self, chat_id: str, message: str, user_id: str = "anonymous") -> None:
        self._event(
            "gen_ai.user.message",
            chat_id,
            content=_message_content("user", message),
            metadata={"gen_ai.user.id": user_id},
        )

    def trace_system_message(self, chat_id: str, message: str) -> None:
        self._event("gen_ai.system.message", chat_id, content=_message_content("system", message))

    def trace_assistant_message(
        self,
        chat_id: str,
        response_id: str,
        message: str,
        tokens_input: float = 0,
        tokens_output: float = 0,
    ) -> None:
        self._event(
            "gen_ai.choice",
            chat_id,
            content=_message_content("assistant", message),
            metadata={
                "gen_ai.response.id": response_id,
                "gen_ai.usage.input_tokens": tokens_input,
                "gen_ai.usage.output_tokens": tokens_output,
            },
        )

    def trace_evaluation(
        self,
        chat_id: str,
        response_id: str,
        evaluator_name: str,
        score: float,
        comment: str = "",
    ) -> None:
        logger.debug("Evaluation {}={} for {}", evaluator_name, score, response_id)
        if self._client is None:
            return
        try:
            self._client.create_score(
                name=evaluator_name,
                value=float(score),
                session_id=chat_id,
                comment=comment or None,
                metadata={"gen_ai.response.id": response_id},
            )
        except Exception as exc:
            logger.debug("create_score failed (non-critical): {}", exc)

    #  spans

    @contextmanager
    def invocation(
        self,
        kind: str,
        chat_id: str,
        name: str,
        input: str,
        *,
        agent_name: Optional[str] = None,
    ) -> Iterator[Invocation]:
        """
        Bracket one ``agent`` or ``tool`` invocation.

        The span is always completed: if the body raises before calling
        ``complete`` it is closed as a failure and the error re-raised.
        """
        span_name = f"gen_ai.{kind}.{name}"
        metadata = {"gen_ai.system": SYSTEM_NAME, "gen_ai.thread.id": chat_id}
        if kind == "tool":
            metadata["gen_ai.tool.name"] = name
            metadata["gen_ai.agent.name"] = agent_name or ""
        else:
            metadata["gen_ai.agent.name"] = name

        logger.debug("{} started: {}", span_name, input[:120])
        with self._span(span_name, input, metadata) as span:
            invocation = Invocation(name, chat_id, input, span)
            try:
                yield invocation
            except BaseException as exc:
                invocation.complete(f"Error: {exc}", success=False)
                raise
            finally:
                if not invocation.completed:
                    invocation.complete("", success=True)
        logger.debug("{} finished (success={})", span_name, invocation.success)

    #  internals

    @contextmanager
    def _span(self, name: str, input: str, metadata: Dict[str, Any]) -> Iterator[Any]:
        if self._client is None:
            yield None
            return
        try:
            manager = self._client.start_as_current_span(name=name, input=input, metadata=metadata)
            span = manager.__enter__()
        except Exception as exc:
            logger.debug("start span '{}' failed (non-critical): {}", name, exc)
            yield None
            return
        try:
            yield span
        finally:
            try:
                manager.__exit__(None, None, None)
            except Exception as exc:
                logger.debug("end span '{}' failed (non-critical): {}", name, exc)

    def _event(
        self,
        name: str,
        chat_id: str,
        *,
        content: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        logger.debug("{} for chat {}", name, chat_id)
        if self._client is None:
            return
        try:
            self._client.create_event(
                name=name,
                input=content,
                metadata={
                    "gen_ai.system": SYSTEM_NAME,
                    "gen_ai.thread.id": chat_id,
                    **(metadata or {}),
                },
            )
        except Exception as exc:
            logger.debug("create_event '{}' failed (non-critical): {}", name, exc)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def intent_summary(records: List[Dict[str, Any]]) -> str:
    """Serialise entity/intent payloads for span metadata."""
    return json.dumps(records, ensure_ascii=False, default=str)


def flush() -> None:
    """Flush pending LangFuse events (call before program exit)."""
    if _is_enabled():
        try:
            _get_lf_client().flush()
            logger.debug("LangFuse flushed.")
        except Exception as exc:
            logger.debug("LangFuse flush failed: {}", exc)
