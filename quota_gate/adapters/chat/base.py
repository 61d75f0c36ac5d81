from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class GenerationResult:
    """Text produced by a backend and what it cost.

    Attributes:
        text: Generated answer.
        total_tokens: Tokens consumed by the call, if the provider reported it.
    """

    text: str
    total_tokens: int | None = None


class AbstractChatBackend(ABC):
    """Interface for generative-AI providers serving several backends/models."""

    @abstractmethod
    async def generate(self, backend: str, prompt: str) -> GenerationResult:
        """Generate an answer with the given backend.

        Args:
            backend: Backend/model identifier chosen by admission control.
            prompt: Fully built prompt to send to the model.

        Returns:
            GenerationResult with the answer text and token usage.

        Raises:
            Exception: Provider-specific failures; callers wrap them.
        """
        ...
