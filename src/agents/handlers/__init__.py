"""
Conversation handlers.

Each handler has a unique ``name`` and an ``invoke(transcript, context)``
method; the dispatcher needs nothing else.
"""

from .admin_handler import AdminHandler
from .base import ChatModelHandler
from .faq_handler import FAQHandler

__all__ = [
    "AdminHandler",
    "ChatModelHandler",
    "FAQHandler",
]
