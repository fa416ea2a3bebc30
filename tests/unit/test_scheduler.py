"""
BETSYNC - Scheduler Service Unit Tests
"""

import pytest

from app.core.exceptions import UpstreamUnavailableError
from app.services.scheduling.scheduler_service import SchedulerService

# Test configuration
pytestmark = pytest.mark.unit


class FakeOrchestrator:
    def __init__(self, live_error=None):
        self.live_error = live_error
        self.calls = []

    async def sync_all(self):
        self.calls.append("sync_all")
        return {
            "basketball": {"games": 3, "from_cache": False},
            "hockey": {"error": "upstream_unavailable", "message": "timeout"},
        }

    async def sync_live_games(self):
        self.calls.append("sync_live_games")
        if self.live_error is not None:
            raise self.live_error
        return {"live_games": 2, "sports": {"basketball": {"games": 3}}}


def enabled_service(orchestrator) -> SchedulerService:
    service = SchedulerService(orchestrator)
    service.enabled = True
    return service


class TestLifecycle:
    """Test scheduler start/stop."""

    @pytest.mark.asyncio
    async def test_registers_sync_jobs(self):
        service = enabled_service(FakeOrchestrator())
        await service.initialize()
        await service.start()

        try:
            jobs = {job["job_id"]: job for job in service.get_jobs()}
            status = service.get_status()
        finally:
            await service.stop()

        assert set(jobs) == {"sync_all_sports", "sync_live_games"}
        assert jobs["sync_all_sports"]["next_run"] is not None
        assert status["running"] is True
        assert status["total_jobs"] == 2
        assert service.get_status()["running"] is False

    @pytest.mark.asyncio
    async def test_disabled_service_is_a_no_op(self):
        service = SchedulerService(FakeOrchestrator())
        service.enabled = False

        await service.initialize()
        await service.start()

        assert service.get_status() == {"enabled": False, "running": False, "total_jobs": 0, "jobs": []}


class TestJobs:
    """Test job bodies."""

    @pytest.mark.asyncio
    async def test_sync_all_records_summary(self):
        orchestrator = FakeOrchestrator()
        service = enabled_service(orchestrator)
        await service.initialize()

        summary = await service.sync_all_sports_job()

        assert orchestrator.calls == ["sync_all"]
        assert summary["hockey"]["error"] == "upstream_unavailable"
        assert service._jobs["sync_all_sports"].last_result == summary

    @pytest.mark.asyncio
    async def test_live_sync(self):
        service = enabled_service(FakeOrchestrator())
        await service.initialize()

        summary = await service.sync_live_games_job()

        assert summary["live_games"] == 2
        assert service._jobs["sync_live_games"].last_result == summary

    @pytest.mark.asyncio
    async def test_live_sync_failure_propagates_to_scheduler(self):
        service = enabled_service(FakeOrchestrator(live_error=UpstreamUnavailableError("down")))
        await service.initialize()

        with pytest.raises(UpstreamUnavailableError):
            await service.sync_live_games_job()

        assert service._jobs["sync_live_games"].last_result is None
