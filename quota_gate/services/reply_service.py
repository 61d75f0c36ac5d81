"""Reply service orchestrating admission control, generation and delivery.

This service is the request path around the quota engines. It handles:
- Backend selection through the rate limit engine
- The generation call through the chat backend adapter
- Recording consumption exactly once per generation
- Splitting the answer into platform-sized messages
- Gating web searches on the monthly search quota

``create_app(chat_backend=...)`` builds one on ``app.state.reply_service``;
an external orchestrator can also construct it directly around the engines.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from quota_gate.adapters.chat.base import AbstractChatBackend
from quota_gate.adapters.search.base import AbstractSearchClient, SearchHit
from quota_gate.core.errors import (
    BackendAppError,
    QuotaExhaustedAppError,
    SearchQuotaExceededAppError,
    SearchUnavailableAppError,
    SelectionFailedAppError,
)
from quota_gate.schemas.quota import SelectionStatus
from quota_gate.services.rate_limit_service import RateLimitEngine
from quota_gate.services.search_quota_service import SearchQuotaGate
from quota_gate.utils.message_splitter import split_for_delivery

logger = logging.getLogger(__name__)

# Charged when a provider does not report token usage.
DEFAULT_TOKEN_ESTIMATE = 100


@dataclass
class ReplyResult:
    """Outcome of one answered request."""

    backend: str
    messages: list[str]
    tokens: int
    failed_backends: list[str] = field(default_factory=list)


class ReplyService:
    """Service answering prompts within provider quotas.

    Attributes:
        engine: Admission controller for AI backends.
        search_gate: Monthly quota gate for web search.
        chat_backend: Adapter performing the generation call.
        search_client: Optional adapter performing web searches.
    """

    def __init__(
        self,
        engine: RateLimitEngine,
        search_gate: SearchQuotaGate,
        chat_backend: AbstractChatBackend,
        *,
        search_client: AbstractSearchClient | None = None,
        max_message_length: int = 2000,
        default_token_estimate: int = DEFAULT_TOKEN_ESTIMATE,
    ) -> None:
        self.engine = engine
        self.search_gate = search_gate
        self.chat_backend = chat_backend
        self.search_client = search_client
        self.max_message_length = max_message_length
        self.default_token_estimate = default_token_estimate

    async def _pick_backend(self, preferred: str | None) -> tuple[str, list[str]]:
        selection = await self.engine.select_backend(preferred)

        if selection.status is SelectionStatus.FAILED:
            raise SelectionFailedAppError(
                code="backend_selection_failed",
                message="Could not read backend usage; try again shortly.",
                details={"failed_backends": selection.failed_backends},
            )
        if selection.status is SelectionStatus.NONE_AVAILABLE or selection.backend is None:
            raise QuotaExhaustedAppError(
                code="quota_exhausted",
                message="All AI backends are at their usage limits. Try again later.",
                details={"configured_backends": list(self.engine.quota.priority_order)},
            )
        return selection.backend, selection.failed_backends

    async def reply(self, prompt: str, *, preferred: str | None = None) -> ReplyResult:
        """Answer a prompt with the first admissible backend.

        Args:
            prompt: Prompt to send to the model.
            preferred: Optional backend to try before the priority order.

        Returns:
            ReplyResult with the serving backend and the delivery messages.

        Raises:
            QuotaExhaustedAppError: If every backend is over its threshold.
            SelectionFailedAppError: If selection failed on the counter store.
            BackendAppError: If the generation call fails.
        """
        backend, failed = await self._pick_backend(preferred)

        try:
            result = await self.chat_backend.generate(backend, prompt)
        except Exception as exc:
            logger.error(
                "reply.generation_failed",
                extra={"backend": backend, "error_type": type(exc).__name__},
            )
            raise BackendAppError(
                code="generation_failed",
                message=f"Backend '{backend}' failed to generate a reply",
                details={"backend": backend},
            ) from exc

        tokens = (
            self.default_token_estimate if result.total_tokens is None else result.total_tokens
        )
        await self.engine.record_usage(backend, requests=1, tokens=tokens)

        messages = split_for_delivery(result.text, self.max_message_length)
        logger.info(
            "reply.generated",
            extra={"backend": backend, "tokens": tokens, "message_count": len(messages)},
        )
        return ReplyResult(
            backend=backend,
            messages=messages,
            tokens=tokens,
            failed_backends=failed,
        )

    async def search(self, query: str, *, count: int = 5) -> list[SearchHit]:
        """Run a web search if this month's quota allows it.

        Raises:
            SearchUnavailableAppError: If no search client is configured.
            SearchQuotaExceededAppError: If the monthly quota is used up or
                cannot be verified.
            BackendAppError: If the search call fails.
        """
        if self.search_client is None:
            raise SearchUnavailableAppError(
                code="search_not_configured",
                message="Web search is not configured",
            )

        if not await self.search_gate.is_available():
            raise SearchQuotaExceededAppError(
                code="search_quota_exceeded",
                message="Monthly search quota exceeded",
                details={"quota": self.search_gate.monthly_quota},
            )

        try:
            hits = await self.search_client.search(query, count=count)
        except Exception as exc:
            logger.error("reply.search_failed", extra={"error_type": type(exc).__name__})
            raise BackendAppError(
                code="search_failed",
                message="Web search failed",
            ) from exc

        usage = await self.search_gate.record_usage()
        logger.info("reply.search_completed", extra={"hits": len(hits), "usage": usage})
        return hits
