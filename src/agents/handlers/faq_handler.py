"""
FAQ handler - insurance coverage, reimbursements, eligibility, premiums.

Flow:
  1. Search the policy documents for the latest question (SearchTool;
     cited titles land in the turn's accumulator).
  2. Answer with the chat model, grounded in the retrieved passages,
     ending with a ``References:`` line.
"""

from loguru import logger
from typing import Any, Optional

from agents.handlers.base import ChatModelHandler
from agents.prompts.agent_prompts import build_faq_prompts
from agents.tools.search_tool import SearchTool
from infrastructure.config import FAQ_HANDLER_NAME
from infrastructure.observability import observe
from memory.conversation_store import Transcript
from memory.turn_context import TurnContext


class FAQHandler(ChatModelHandler):
    """Retrieval-grounded answers to insurance questions."""

    name = FAQ_HANDLER_NAME

    def __init__(self, llm: Any, search_tool: Optional[SearchTool] = None) -> None:
        super().__init__(llm)
        self.search_tool = search_tool
        if search_tool is None:
            logger.warning("FAQ handler has no search tool; answers will not be grounded.")

    @observe(name="faq_handler", as_type="generation")
    def invoke(self, transcript: Transcript, context: TurnContext) -> str:
        question = transcript.last_user_message() or ""

        results = []
        if self.search_tool is not None and question:
            results = self.search_tool.search(question, context)

        system_prompt, context_prompt = build_faq_prompts(question, results)
        messages = [
            {"role": "system", "content": system_prompt},
            {"role": "system", "content": context_prompt},
            *transcript.to_dicts(),
        ]
        response = self._complete(messages)
        return self._content(response)
