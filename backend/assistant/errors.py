from __future__ import annotations
from typing import Optional

# Messages the browser is allowed to see. Never put exception text in here
GENERIC_ERROR = "I'm having trouble processing your request right now."
LLM_UNAVAILABLE = "Unable to connect to the AI service. Please try again."


class AssistantError(Exception):
    """Base for everything this backend raises on purpose"""


class ConfigurationError(AssistantError):
    """A dependency was handed a setting it cannot work with"""


class TransportError(AssistantError):
    """A network call to the vector store, embedder or LLM failed"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class EmbeddingError(TransportError):
    """No usable vector came back for a piece of text"""
