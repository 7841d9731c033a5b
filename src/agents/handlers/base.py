"""
Shared plumbing for handlers backed by a LangChain chat model.
"""

from typing import Any, Dict, List, Optional

from infrastructure.observability import update_current_observation


class ChatModelHandler:
    """
    Base for handlers that answer with a chat model.

    Subclasses set ``name`` and implement ``invoke(transcript, context)``.
    """

    name: str = ""

    def __init__(self, llm: Any) -> None:
        """
        Args:
            llm: A LangChain ``ChatOpenAI`` (or compatible) instance.
        """
        self.llm = llm

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, model={self._model_name()!r})"

    def _complete(self, messages: List[Any], llm: Optional[Any] = None) -> Any:
        """Invoke the model and report output + token usage to LangFuse."""
        update_current_observation(
            input=str(messages[-1])[:1000] if messages else "",
            model=self._model_name(),
        )
        response = (llm or self.llm).invoke(messages)
        usage = self._usage(response)
        update_current_observation(
            output=self._content(response)[:1000],
            usage=usage if usage else None,
        )
        return response

    @staticmethod
    def _content(response: Any) -> str:
        content = response.content if hasattr(response, "content") else str(response)
        if isinstance(content, list):
            # Content blocks: keep the text parts
            content = "".join(
                part.get("text", "") if isinstance(part, dict) else str(part)
                for part in content
            )
        return (content or "").strip()

    @staticmethod
    def _usage(response: Any) -> Dict[str, int]:
        meta = getattr(response, "response_metadata", None) or {}
        token_usage = meta.get("token_usage") or meta.get("usage", {})
        if not token_usage:
            return {}
        return {
            "input": token_usage.get("prompt_tokens", 0),
            "output": token_usage.get("completion_tokens", 0),
            "total": token_usage.get("total_tokens", 0),
        }

    def _model_name(self) -> str:
        """Extract model name from the LLM for LangFuse metadata."""
        if hasattr(self.llm, "model_name"):
            return self.llm.model_name
        if hasattr(self.llm, "model"):
            return self.llm.model
        return "unknown"
