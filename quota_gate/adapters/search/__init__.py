"""Web search adapter layer."""

from quota_gate.adapters.search.base import AbstractSearchClient, SearchHit

__all__ = [
    "AbstractSearchClient",
    "SearchHit",
]
