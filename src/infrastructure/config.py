"""
Application configuration - loads from YAML param files.

CONFIGURATION POLICY:
====================
Configuration is loaded from config/param.yaml.
Secrets (API keys, endpoints) live ONLY in .env and are loaded via os.getenv().

Every value has an in-code default, so the assistant starts with a
missing or partial param.yaml.
"""

from pathlib import Path
from typing import Any, Dict, List, Optional
import os
import yaml
from dotenv import load_dotenv
from loguru import logger

load_dotenv()

# ========================================
# Project Paths
# ========================================

# Get project root (parent of src/infrastructure/)
_PROJECT_ROOT = Path(__file__).parent.parent.parent
_CONFIG_DIR = _PROJECT_ROOT / "config"

# ========================================
# YAML Config Loading
# ========================================

def _load_yaml(filename: str) -> Dict[str, Any]:
    """Load a YAML config file."""
    filepath = _CONFIG_DIR / filename
    if not filepath.exists():
        return {}
    with open(filepath, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def _get_nested(d: Dict, *keys, default=None):
    """Get nested dictionary value safely."""
    for key in keys:
        if isinstance(d, dict):
            d = d.get(key, default)
        else:
            return default
    return d if d is not None else default


# Load configs
_PARAMS = _load_yaml("param.yaml")

# ========================================
# Provider Configuration
# ========================================

PROVIDER = _get_nested(_PARAMS, "provider", "default", default="openrouter")
OPENROUTER_BASE_URL = _get_nested(_PARAMS, "provider", "openrouter_base_url",
                                   default="https://openrouter.ai/api/v1")
GROQ_BASE_URL = "https://api.groq.com/openai/v1"

# ========================================
# Chat model (used by every handler)
# ========================================

CHAT_MODEL = _get_nested(_PARAMS, "llm", "chat_model", default="openai/gpt-4o-mini")
CHAT_PROVIDER = _get_nested(_PARAMS, "llm", "chat_provider", default=PROVIDER)
LLM_TEMPERATURE = _get_nested(_PARAMS, "llm", "temperature", default=0.0)
LLM_MAX_TOKENS = _get_nested(_PARAMS, "llm", "max_tokens", default=1500)
LLM_TIMEOUT_SECONDS = _get_nested(_PARAMS, "llm", "timeout_seconds", default=60)
ADMIN_MAX_TOOL_ROUNDS = _get_nested(_PARAMS, "llm", "max_tool_rounds", default=3)

EMBEDDING_MODEL = _get_nested(_PARAMS, "embedding", "model",
                              default="openai/text-embedding-3-small")

# ========================================
# Intent classification (Azure conversational language understanding)
# ========================================

INTENT_LANGUAGE = _get_nested(_PARAMS, "intent", "language", default="nl")
INTENT_API_VERSION = _get_nested(_PARAMS, "intent", "api_version", default="2024-11-15-preview")
INTENT_PROJECT_NAME = _get_nested(_PARAMS, "intent", "project_name", default="test")
INTENT_TIMEOUT_SECONDS = _get_nested(_PARAMS, "intent", "timeout_seconds", default=10.0)

# Used whenever the classifier call fails
FALLBACK_INTENT = _get_nested(_PARAMS, "intent", "fallback_intent", default="informatieVergoedingen")
FALLBACK_CONFIDENCE = _get_nested(_PARAMS, "intent", "fallback_confidence", default=0.5)

AZURE_LANGUAGE_ENDPOINT = os.getenv("AZURE_LANGUAGE_ENDPOINT", None)
AZURE_LANGUAGE_KEY = os.getenv("AZURE_LANGUAGE_KEY", None)
AZURE_LANGUAGE_DEPLOYMENT = os.getenv("AZURE_LANGUAGE_DEPLOYMENT", None)

# ========================================
# Routing
# ========================================

FAQ_HANDLER_NAME = "FAQAgent"
ADMIN_HANDLER_NAME = "AdminAgent"

_DEFAULT_INTENT_HANDLERS = {
    "informatieVergoedingen": FAQ_HANDLER_NAME,
    "declaratieIndienen": FAQ_HANDLER_NAME,
    "adviesVerzekering": FAQ_HANDLER_NAME,
    "informatiePremie": FAQ_HANDLER_NAME,
    "klachtIndienen": ADMIN_HANDLER_NAME,
    "afspraakMaken": ADMIN_HANDLER_NAME,
    "afspraakAnnuleren": ADMIN_HANDLER_NAME,
    "afspraakWijzigen": ADMIN_HANDLER_NAME,
}

_DEFAULT_ENTITY_OVERRIDES = {
    "afspraak": ADMIN_HANDLER_NAME,
    "appointment": ADMIN_HANDLER_NAME,
    "klacht": ADMIN_HANDLER_NAME,
    "complaint": ADMIN_HANDLER_NAME,
}

DEFAULT_HANDLER = _get_nested(_PARAMS, "routing", "default_handler", default=FAQ_HANDLER_NAME)
INTENT_HANDLERS: Dict[str, str] = _get_nested(
    _PARAMS, "routing", "intent_handlers", default=_DEFAULT_INTENT_HANDLERS
)
ENTITY_OVERRIDES: Dict[str, str] = _get_nested(
    _PARAMS, "routing", "entity_overrides", default=_DEFAULT_ENTITY_OVERRIDES
)
SECONDARY_INTENT_THRESHOLD = _get_nested(
    _PARAMS, "routing", "secondary_intent_threshold", default=0.8
)

# ========================================
# Conversations
# ========================================

SYSTEM_MESSAGE = _get_nested(
    _PARAMS, "conversation", "system_message",
    default="You are a helpful healthcare insurance assistant.",
)
CONVERSATION_TTL_SECONDS = _get_nested(_PARAMS, "conversation", "ttl_seconds", default=60 * 60 * 24)
MAX_CONVERSATIONS = _get_nested(_PARAMS, "conversation", "max_conversations", default=1000)

# ========================================
# Retrieval (Qdrant)
# ========================================

TOP_K_RESULTS = _get_nested(_PARAMS, "retrieval", "top_k", default=5)
SIMILARITY_THRESHOLD = _get_nested(_PARAMS, "retrieval", "similarity_threshold", default=0.0)

QDRANT_API_KEY = os.getenv("QDRANT_API_KEY", None)
QDRANT_URL = os.getenv("QDRANT_URL", None)
QDRANT_COLLECTION_NAME = os.getenv("QDRANT_COLLECTION_NAME", "insurance_docs")

# ========================================
# Helper Functions
# ========================================

def get_api_key(provider: Optional[str] = None) -> Optional[str]:
    """Get API key for the specified provider."""
    provider = provider or PROVIDER
    key_map = {
        "openrouter": "OPENROUTER_API_KEY",
        "openai": "OPENAI_API_KEY",
        "groq": "GROQ_API_KEY",
        "azure_language": "AZURE_LANGUAGE_KEY",
    }
    env_var = key_map.get(provider, f"{provider.upper()}_API_KEY")
    return os.getenv(env_var)


def missing_secrets() -> List[str]:
    """Return the names of required secrets that are not set."""
    missing = []
    if not get_api_key(CHAT_PROVIDER):
        missing.append(
            "OPENROUTER_API_KEY" if CHAT_PROVIDER == "openrouter"
            else f"{CHAT_PROVIDER.upper()}_API_KEY"
        )
    if not AZURE_LANGUAGE_ENDPOINT:
        missing.append("AZURE_LANGUAGE_ENDPOINT")
    if not AZURE_LANGUAGE_KEY:
        missing.append("AZURE_LANGUAGE_KEY")
    if not AZURE_LANGUAGE_DEPLOYMENT:
        missing.append("AZURE_LANGUAGE_DEPLOYMENT")
    return missing


def validate() -> None:
    """
    Validate configuration.

    Raises:
        ValueError: If a required secret is missing
    """
    missing = missing_secrets()
    if missing:
        raise ValueError(
            f" Missing required secret: {missing[0]}\n"
            f"Please add it to your .env file."
        )


def dump(level: str = "DEBUG") -> None:
    """Log all active non-secret configuration values (at ``level``)."""
    logger.log(level, "\n" + "=" * 60)
    logger.log(level, "CONFIGURATION (NON-SECRETS ONLY)")
    logger.log(level, "=" * 60)

    logger.log(level, "\n Provider:")
    logger.log(level, f"   Provider: {PROVIDER}")
    logger.log(level, f"   Chat Model: {CHAT_MODEL} ({CHAT_PROVIDER})")
    logger.log(level, f"   Temperature: {LLM_TEMPERATURE}")
    logger.log(level, f"   Timeout: {LLM_TIMEOUT_SECONDS}s")

    logger.log(level, "\n Intent classification:")
    logger.log(level, f"   Language: {INTENT_LANGUAGE}")
    logger.log(level, f"   API version: {INTENT_API_VERSION}")
    logger.log(level, f"   Fallback: {FALLBACK_INTENT} ({FALLBACK_CONFIDENCE})")
    logger.log(level, f"   Endpoint: {'set' if AZURE_LANGUAGE_ENDPOINT else 'not set'}")

    logger.log(level, "\n Routing:")
    logger.log(level, f"   Default handler: {DEFAULT_HANDLER}")
    logger.log(level, f"   Intent rules: {len(INTENT_HANDLERS)}")
    logger.log(level, f"   Entity overrides: {', '.join(ENTITY_OVERRIDES)}")
    logger.log(level, f"   Secondary intent threshold: {SECONDARY_INTENT_THRESHOLD}")

    logger.log(level, "\n Conversations:")
    logger.log(level, f"   TTL (seconds): {CONVERSATION_TTL_SECONDS}")
    logger.log(level, f"   Max conversations: {MAX_CONVERSATIONS}")

    logger.log(level, "\n Retrieval:")
    logger.log(level, f"   Collection: {QDRANT_COLLECTION_NAME}")
    logger.log(level, f"   Top-K Results: {TOP_K_RESULTS}")
    logger.log(level, f"   URL: {'set' if QDRANT_URL else 'not set'}")

    logger.log(level, "\n" + "=" * 60 + "\n")
