"""
OneSupport Assistant

Retrieval-augmented question answering over product documentation for the
OneSupport customer-support console.
"""

from .assistant import AnswerResult, SupportAssistant
from .config import AssistantConfig
from .errors import AssistantError
from .indexing import DocumentIndexer
from .knowledge import KnowledgeBase
from .memory import ConversationWindow

__all__ = [
    "AnswerResult",
    "AssistantConfig",
    "AssistantError",
    "ConversationWindow",
    "DocumentIndexer",
    "KnowledgeBase",
    "SupportAssistant",
]
