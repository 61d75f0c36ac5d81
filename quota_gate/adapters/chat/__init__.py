"""Chat backend adapter layer - abstracts over generative-AI providers."""

from quota_gate.adapters.chat.base import AbstractChatBackend, GenerationResult

__all__ = [
    "AbstractChatBackend",
    "GenerationResult",
]
