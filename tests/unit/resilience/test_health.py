"""
헬스체크 테스트
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from collabo_pad.resilience.health import HealthCheckResult, check_database_health


class TestCheckDatabaseHealth:
    """check_database_health()"""

    @pytest.mark.asyncio
    async def test_healthy(self):
        probe = AsyncMock(return_value=True)

        result = await check_database_health(probe)

        assert isinstance(result, HealthCheckResult)
        assert result.healthy is True
        assert result.details["attempts"] == 3
        assert "error" not in result.details
        probe.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_probe_returning_false(self):
        result = await check_database_health(AsyncMock(return_value=False))
        assert result.healthy is False

    @pytest.mark.asyncio
    async def test_recovers_after_transient_failure(self):
        probe = AsyncMock(side_effect=[ConnectionError("ECONNREFUSED"), True])

        result = await check_database_health(probe, retries=2, retry_delay=0.0)

        assert result.healthy is True
        assert probe.await_count == 2

    @pytest.mark.asyncio
    async def test_failure_reports_error(self):
        probe = AsyncMock(side_effect=ConnectionError("connection refused"))

        result = await check_database_health(probe, retries=1, retry_delay=0.0)

        assert result.healthy is False
        assert probe.await_count == 2
        error = result.details["error"]
        assert error["name"] == "DatabaseError"
        assert error["code"] == "CONNECTION_ERROR"

    @pytest.mark.asyncio
    async def test_timeout(self):
        """프로브가 timeout을 넘기면 TIMEOUT_ERROR로 재시도 후 실패"""
        async def slow_probe():
            await asyncio.sleep(1)
            return True

        result = await check_database_health(slow_probe, timeout=0.01, retries=0)

        assert result.healthy is False
        assert result.details["error"]["code"] == "TIMEOUT_ERROR"
        assert result.to_dict()["healthy"] is False
