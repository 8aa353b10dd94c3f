"""
Unit tests for the health endpoints: liveness and readiness.
"""
from contextlib import contextmanager
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from reach.core.circuit_breaker import get_paystack_circuit_breaker
from reach.domain.services import health_service

_SERVICE = "reach.domain.services.health_service"


@contextmanager
def _checks(db: str = "ok", redis: str = "ok", celery: str = "ok"):
    with patch(f"{_SERVICE}._check_db", new_callable=AsyncMock, return_value=db), \
         patch(f"{_SERVICE}._check_redis", new_callable=AsyncMock, return_value=redis), \
         patch(f"{_SERVICE}._check_celery", new_callable=AsyncMock, return_value=celery):
        yield


class TestLivenessProbe:
    @pytest.mark.unit
    async def test_liveness_always_healthy(self, test_client: httpx.AsyncClient) -> None:
        with _checks(db="error: db_unavailable"):
            response = await test_client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}


class TestReadinessProbe:
    @pytest.mark.unit
    async def test_all_healthy(self, test_client: httpx.AsyncClient) -> None:
        with _checks():
            response = await test_client.get("/health/ready")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert (data["db"], data["redis"], data["celery"]) == ("ok", "ok", "ok")

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "failing",
        [{"db": "error: db_unavailable"}, {"redis": "error: redis_unavailable"}, {"celery": "error: celery_unavailable"}],
    )
    async def test_any_dependency_down_is_503(self, test_client: httpx.AsyncClient, failing) -> None:
        with _checks(**failing):
            response = await test_client.get("/health/ready")

        assert response.status_code == 503
        data = response.json()
        assert data["status"] == "degraded"
        for key, value in failing.items():
            assert data[key] == value

    @pytest.mark.unit
    async def test_open_breaker_reported_but_not_degrading(self, test_client: httpx.AsyncClient) -> None:
        breaker = get_paystack_circuit_breaker()
        for _ in range(breaker.config.failure_threshold):
            await breaker.record_failure()

        with _checks():
            response = await test_client.get("/health/ready")

        assert response.status_code == 200
        assert response.json()["circuit_breakers"] == {"paystack": "open"}


class TestIndividualChecks:
    @pytest.mark.unit
    async def test_redis_check_uses_shared_client(self, fake_redis) -> None:
        with patch(f"{_SERVICE}.get_redis", new_callable=AsyncMock, return_value=fake_redis):
            assert await health_service._check_redis() == "ok"

    @pytest.mark.unit
    async def test_redis_failure_hides_details(self) -> None:
        with patch(f"{_SERVICE}.get_redis", new_callable=AsyncMock, side_effect=ConnectionError("10.0.0.9:6379")):
            assert await health_service._check_redis() == "error: redis_unavailable"

    @pytest.mark.unit
    async def test_celery_broker_ping_failure(self) -> None:
        broken = MagicMock()
        broken.ping = AsyncMock(side_effect=ConnectionError("refused"))
        broken.aclose = AsyncMock()

        with patch(f"{_SERVICE}.aioredis.from_url", return_value=broken):
            assert await health_service._check_celery() == "error: celery_unavailable"

        broken.aclose.assert_awaited_once()
