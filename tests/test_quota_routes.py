"""API tests for the quota endpoints."""

import pytest
from fastapi.testclient import TestClient

from conftest import FailingStore
from quota_gate.adapters.counter_store.in_memory import InMemoryCounterStore
from quota_gate.core.app_factory import create_app
from quota_gate.core.config import QuotaSettings, Settings
from quota_gate.services.rate_limit_service import counter_key
from quota_gate.schemas.quota import Metric

HEADERS = {"X-API-Key": "test-api-key-123"}


@pytest.fixture
def store() -> InMemoryCounterStore:
    return InMemoryCounterStore()


@pytest.fixture
def client(quota_settings: QuotaSettings, store: InMemoryCounterStore):
    app = create_app(Settings(quota=quota_settings), store=store)
    with TestClient(app) as test_client:
        yield test_client


class TestAuthentication:
    """Quota endpoints require an API key."""

    def test_missing_key_is_rejected(self, client: TestClient) -> None:
        response = client.get("/v1/quota/backends")

        assert response.status_code == 403

    def test_reset_requires_valid_key(self, client: TestClient) -> None:
        response = client.post("/v1/quota/reset", headers={"X-API-Key": "nope"})

        assert response.status_code == 403

    def test_health_is_public(self, client: TestClient) -> None:
        assert client.get("/health").json() == {"status": "ok"}


class TestBackendCapacity:
    """GET /v1/quota/backends[/{backend}]."""

    def test_startup_initializes_counters(self, client: TestClient, store: InMemoryCounterStore) -> None:
        assert store.stats()["live_entries"] == 9

    def test_lists_all_backends_in_order(self, client: TestClient) -> None:
        response = client.get("/v1/quota/backends", headers=HEADERS)

        assert response.status_code == 200
        body = response.json()
        assert [item["backend"] for item in body] == ["primary", "fallback", "spare"]
        assert body[0]["can_admit"] is True
        assert body[0]["switch_threshold_percentage"] == 80.0
        assert body[0]["limits"] == {"rpm": 15, "tpm": 1000, "rpd": 100}

    def test_single_backend(self, client: TestClient) -> None:
        response = client.get("/v1/quota/backends/fallback", headers=HEADERS)

        assert response.status_code == 200
        body = response.json()
        assert body["backend"] == "fallback"
        assert body["remaining"] == {"rpm": 10, "tpm": 5000, "rpd": 50}

    def test_unknown_backend_is_404(self, client: TestClient) -> None:
        response = client.get("/v1/quota/backends/nope", headers=HEADERS)

        assert response.status_code == 404
        error = response.json()["error"]
        assert error["code"] == "unknown_backend"
        assert error["details"]["backend"] == "nope"


class TestUsageAndSelection:
    """Recording usage and asking for a backend."""

    def test_record_usage_returns_updated_capacity(self, client: TestClient) -> None:
        response = client.post(
            "/v1/quota/backends/primary/usage",
            json={"requests": 1, "tokens": 250},
            headers=HEADERS,
        )

        assert response.status_code == 200
        body = response.json()
        assert body["current"] == {"rpm": 1, "tpm": 250, "rpd": 1}
        assert body["last_request_at"] is not None

    def test_negative_usage_is_rejected(self, client: TestClient) -> None:
        response = client.post(
            "/v1/quota/backends/primary/usage",
            json={"requests": -1},
            headers=HEADERS,
        )

        assert response.status_code == 422

    def test_select_without_body(self, client: TestClient) -> None:
        response = client.post("/v1/quota/select", headers=HEADERS)

        assert response.status_code == 200
        assert response.json() == {"status": "selected", "backend": "primary", "failed_backends": []}

    def test_select_falls_back_after_primary_is_exhausted(self, client: TestClient) -> None:
        client.post("/v1/quota/backends/primary/usage", json={"requests": 12}, headers=HEADERS)

        response = client.post("/v1/quota/select", headers=HEADERS)

        assert response.json()["backend"] == "fallback"

    def test_select_with_preferred_backend(self, client: TestClient) -> None:
        response = client.post("/v1/quota/select", json={"preferred": "spare"}, headers=HEADERS)

        assert response.json()["backend"] == "spare"

    def test_select_with_estimated_tokens(self, client: TestClient) -> None:
        response = client.post(
            "/v1/quota/select",
            json={"estimated_tokens": 900},
            headers=HEADERS,
        )

        assert response.json()["backend"] == "fallback"

    def test_none_available(self, client: TestClient) -> None:
        client.post("/v1/quota/backends/primary/usage", json={"requests": 12}, headers=HEADERS)
        client.post("/v1/quota/backends/fallback/usage", json={"requests": 8}, headers=HEADERS)

        response = client.post("/v1/quota/select", headers=HEADERS)

        assert response.status_code == 200
        assert response.json() == {"status": "none_available", "backend": None, "failed_backends": []}

    def test_reset_single_backend(self, client: TestClient, store: InMemoryCounterStore) -> None:
        client.post("/v1/quota/backends/primary/usage", json={"requests": 3}, headers=HEADERS)

        response = client.post("/v1/quota/reset", params={"backend": "primary"}, headers=HEADERS)

        assert response.json() == {"reset": ["primary"]}
        assert client.get("/v1/quota/backends/primary", headers=HEADERS).json()["current"]["rpm"] == 0

    def test_reset_all(self, client: TestClient) -> None:
        response = client.post("/v1/quota/reset", headers=HEADERS)

        assert response.json() == {"reset": ["primary", "fallback", "spare"]}


class TestStoreFailures:
    """Counter store failures surface as 503 or FAILED selections."""

    @pytest.fixture
    def failing_client(self, quota_settings: QuotaSettings):
        app = create_app(Settings(quota=quota_settings), store=FailingStore({"primary:"}))
        with TestClient(app) as test_client:
            yield test_client

    def test_capacity_read_failure_is_503(self, failing_client: TestClient) -> None:
        response = failing_client.get("/v1/quota/backends/primary", headers=HEADERS)

        assert response.status_code == 503
        assert response.json()["error"]["code"] == "counter_store_failure"

    def test_selection_reports_failed_backends(self, failing_client: TestClient) -> None:
        response = failing_client.post("/v1/quota/select", headers=HEADERS)

        assert response.json() == {
            "status": "selected",
            "backend": "fallback",
            "failed_backends": ["primary"],
        }


class TestSearchQuota:
    """Monthly search quota endpoints."""

    def test_status_starts_empty(self, client: TestClient) -> None:
        body = client.get("/v1/quota/search", headers=HEADERS).json()

        assert body["usage"] == 0
        assert body["quota"] == 3
        assert body["remaining"] == 3
        assert body["available"] is True

    def test_usage_until_exhausted(self, client: TestClient) -> None:
        for _ in range(3):
            body = client.post("/v1/quota/search/usage", headers=HEADERS).json()

        assert body["usage"] == 3
        assert body["remaining"] == 0
        assert body["available"] is False

    def test_reset(self, client: TestClient) -> None:
        client.post("/v1/quota/search/usage", headers=HEADERS)

        body = client.post("/v1/quota/search/reset", headers=HEADERS).json()

        assert body["usage"] == 0
        assert body["available"] is True


def test_counter_keys_follow_backend_metric_format() -> None:
    assert counter_key("gemini-2.0-flash", Metric.TPM) == "gemini-2.0-flash:tpm"


class DeleteFailingStore(InMemoryCounterStore):
    async def delete_key(self, key: str) -> bool:
        raise ConnectionError("store unreachable")


def test_search_reset_store_failure_is_503(quota_settings: QuotaSettings) -> None:
    app = create_app(Settings(quota=quota_settings), store=DeleteFailingStore())

    with TestClient(app) as test_client:
        response = test_client.post("/v1/quota/search/reset", headers=HEADERS)

    assert response.status_code == 503
    assert response.json()["error"]["code"] == "counter_store_failure"
