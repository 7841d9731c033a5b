"""
Admin handler - appointment booking, rescheduling, cancellations, complaints.

The chat model is bound to the confirmation e-mail tool.  Requested tool
calls are executed and fed back until the model answers in plain text,
for at most ``max_tool_rounds`` rounds.
"""

import json
from loguru import logger
from typing import Any, Dict, List, Optional

from langchain_core.messages import ToolMessage

from agents.handlers.base import ChatModelHandler
from agents.prompts.agent_prompts import build_admin_prompt
from agents.tools.email_tool import EmailTool
from infrastructure.config import ADMIN_HANDLER_NAME, ADMIN_MAX_TOOL_ROUNDS
from infrastructure.observability import ConversationTracer, observe
from memory.conversation_store import Transcript
from memory.turn_context import TurnContext


class AdminHandler(ChatModelHandler):
    """Administrative requests, with e-mail confirmations."""

    name = ADMIN_HANDLER_NAME

    def __init__(
        self,
        llm: Any,
        email_tool: Optional[EmailTool] = None,
        max_tool_rounds: int = ADMIN_MAX_TOOL_ROUNDS,
        tracer: Optional[ConversationTracer] = None,
    ) -> None:
        super().__init__(llm)
        self.email_tool = email_tool or EmailTool()
        self.max_tool_rounds = max_tool_rounds
        self.tracer = tracer or ConversationTracer()
        self._tools = {"send_confirmation_email": self.email_tool}
        self._llm_with_tools = llm.bind_tools([self.email_tool.as_langchain_tool()])

    @observe(name="admin_handler", as_type="generation")
    def invoke(self, transcript: Transcript, context: TurnContext) -> str:
        messages: List[Any] = [
            {"role": "system", "content": build_admin_prompt()},
            *transcript.to_dicts(),
        ]

        for _ in range(self.max_tool_rounds):
            response = self._complete(messages, llm=self._llm_with_tools)
            tool_calls = getattr(response, "tool_calls", None) or []
            if not tool_calls:
                return self._content(response)

            messages.append(response)
            for call in tool_calls:
                messages.append(
                    ToolMessage(
                        content=self._run_tool(call, context),
                        tool_call_id=call.get("id") or call.get("name", ""),
                    )
                )

        logger.warning("Admin handler hit {} tool rounds; answering without tools", self.max_tool_rounds)
        return self._content(self._complete(messages))

    def _run_tool(self, call: Dict[str, Any], context: TurnContext) -> str:
        name = call.get("name", "")
        args = call.get("args") or {}
        with self.tracer.invocation(
            "tool", context.conversation_id, "EmailTool", json.dumps(args, ensure_ascii=False),
            agent_name=self.name,
        ) as span:
            tool = self._tools.get(name)
            if tool is None:
                result = json.dumps({"success": False, "message": f"Unknown tool: {name}"})
                span.complete(result, success=False)
                return result
            try:
                result = tool.dispatch(name, args)
            except Exception as exc:
                logger.error("Tool '{}' failed: {}", name, exc)
                result = json.dumps({"success": False, "message": f"Error: {exc}"})
                span.complete(result, success=False)
                return result
            span.complete(result, success=json.loads(result).get("success", False))
        return result
