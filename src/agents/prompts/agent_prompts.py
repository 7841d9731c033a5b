"""
Prompt templates for the conversation handlers.

Prompts are fetched from **LangFuse Prompt Management** at runtime.
If a prompt hasn't been created in LangFuse yet, the local fallback
(defined below) is used instead - so the system works out-of-the-box.

To manage prompts via LangFuse Cloud:
  1. Open LangFuse → Prompts → + New Prompt
  2. Create prompts with the names listed in the LANGFUSE_PROMPT_NAMES dict
  3. Use {{variable}} (double-curly Mustache syntax) for template variables
  4. Set a version to "production" to make it active

Prompt roles:
  1. FAQ SYSTEM   - insurance FAQ persona, cites its source documents
  2. FAQ CONTEXT  - retrieved passages the FAQ answer must be grounded in
  3. ADMIN SYSTEM - appointments, cancellations, complaints, confirmations
"""

from typing import Any, Dict, List

from infrastructure.observability import fetch_prompt


# LangFuse prompt names → create these in your dashboard


LANGFUSE_PROMPT_NAMES = {
    "faq_system":   "healthcare-faq-system",
    "faq_context":  "healthcare-faq-context",
    "admin_system": "healthcare-admin-system",
}


# 1. FAQ - insurance questions (fallback)


_FAQ_SYSTEM_FALLBACK = """\
You are a specialised healthcare insurance FAQ assistant.
You answer questions about insurance coverage, reimbursements, eligibility,
premiums and claims.

Rules:
1. Ground every answer in the provided document passages.
2. If the passages do not contain the answer, say so honestly.
3. Use plain, conversational language; explain jargon when you must use it.
4. Use bullet points for complex answers; be concise but complete.
5. Answer in the language the user writes in.
6. ALWAYS end with one line listing the documents you used, exactly as:
   References: Document1.pdf, Document2.pdf
"""

_FAQ_CONTEXT_FALLBACK = """\
DOCUMENT PASSAGES for the question "{query}":

{search_results}"""


# 2. ADMIN - appointments and complaints (fallback)


_ADMIN_SYSTEM_FALLBACK = """\
You are an administrative assistant for a healthcare insurer.
You handle appointment booking, rescheduling, cancellations and complaints.

Rules:
1. Work out which request this is and gather the details you need:
   name, date/time, reason; for rescheduling both the old and new slot;
   for cancellations the appointment and the reason.
2. For complaints, acknowledge the issue with empathy and explain the next steps.
3. Ask for an e-mail address and, once a request is complete, send a
   confirmation with the send_confirmation_email tool.
4. Confirm what was done and what happens next; be professional and courteous.
5. Answer in the language the user writes in.
"""


# Prompt builders - fetch from LangFuse, fall back to local


def format_search_results(results: List[Dict[str, Any]], max_chars: int = 1500) -> str:
    """Render retrieved passages as numbered, titled blocks."""
    if not results:
        return "(no passages found)"
    lines: List[str] = []
    for idx, hit in enumerate(results, 1):
        title = hit.get("title") or "Untitled"
        text = hit.get("chunk_text") or hit.get("content") or ""
        if len(text) > max_chars:
            text = text[:max_chars] + "…"
        lines.append(f"--- [{idx}] {title} ---\n{text}")
    return "\n\n".join(lines)


def build_faq_prompts(query: str, results: List[Dict[str, Any]]) -> tuple[str, str]:
    """Return (system_prompt, context_prompt) for an FAQ answer."""
    system_prompt = fetch_prompt(
        LANGFUSE_PROMPT_NAMES["faq_system"],
        fallback=_FAQ_SYSTEM_FALLBACK,
    )
    context_prompt = fetch_prompt(
        LANGFUSE_PROMPT_NAMES["faq_context"],
        fallback=_FAQ_CONTEXT_FALLBACK,
        query=query,
        search_results=format_search_results(results),
    )
    return system_prompt, context_prompt


def build_admin_prompt() -> str:
    """Return the admin handler's system prompt."""
    return fetch_prompt(
        LANGFUSE_PROMPT_NAMES["admin_system"],
        fallback=_ADMIN_SYSTEM_FALLBACK,
    )
