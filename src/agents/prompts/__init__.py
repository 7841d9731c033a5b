"""
Handler prompt templates - FAQ persona, FAQ grounding context, admin persona.

Prompts are fetched from LangFuse Prompt Management at runtime.
Local fallbacks are defined in 'agent_prompts.py'.
"""

from .agent_prompts import (
    LANGFUSE_PROMPT_NAMES,
    build_admin_prompt,
    build_faq_prompts,
    format_search_results,
)

__all__ = [
    "LANGFUSE_PROMPT_NAMES",
    "build_admin_prompt",
    "build_faq_prompts",
    "format_search_results",
]
