from abc import ABC, abstractmethod

from pydantic import BaseModel, Field


class SearchHit(BaseModel):
    """A single web search result."""

    title: str
    url: str
    description: str = Field(default="", description="Snippet returned by the provider.")


class AbstractSearchClient(ABC):
    """Interface for web search providers."""

    @abstractmethod
    async def search(self, query: str, *, count: int = 5) -> list[SearchHit]:
        """Run a web search.

        Args:
            query: Search query.
            count: Maximum number of results to return.

        Returns:
            Results in provider ranking order.
        """
        ...
