"""Tests for the task scheduler, the in-memory recorder and secret cleanup."""

import asyncio
import logging

import httpx
import pytest

from sovereign_liberator.domain.entities import DeploymentStatus
from sovereign_liberator.domain.exceptions import ResourceNotFoundError
from sovereign_liberator.infrastructure.memory_recorder import InMemoryDeploymentRecorder
from sovereign_liberator.infrastructure.task_scheduler import AsyncioTaskScheduler
from sovereign_liberator.services.secret_cleanup import SecretCleanupService


class TestAsyncioTaskScheduler:
    """Tests for detached task submission."""

    @pytest.mark.asyncio
    async def test_submitted_work_runs_after_delay(self):
        scheduler = AsyncioTaskScheduler()
        done = asyncio.Event()

        async def work():
            done.set()

        scheduler.submit(0.01, work, name="unit")
        assert scheduler.pending == 1

        await asyncio.wait_for(done.wait(), timeout=1)
        for _ in range(5):
            await asyncio.sleep(0)
        assert scheduler.pending == 0

    @pytest.mark.asyncio
    async def test_failures_are_logged_not_raised(self, caplog):
        scheduler = AsyncioTaskScheduler()

        async def work():
            raise RuntimeError("cleanup exploded")

        with caplog.at_level(logging.ERROR):
            scheduler.submit(0, work, name="failing")
            for _ in range(5):
                await asyncio.sleep(0)

        assert scheduler.pending == 0
        assert "failing" in caplog.text

    @pytest.mark.asyncio
    async def test_shutdown_cancels_pending(self):
        scheduler = AsyncioTaskScheduler()
        ran = []

        async def work():
            ran.append(True)

        scheduler.submit(60, work, name="later")
        await scheduler.shutdown()

        assert scheduler.pending == 0
        assert ran == []


class TestInMemoryDeploymentRecorder:
    """Tests for the standalone deployment record store."""

    @pytest.mark.asyncio
    async def test_update_and_get(self):
        recorder = InMemoryDeploymentRecorder()
        await recorder.update_status("d1", DeploymentStatus.DEPLOYED, deployed_url="https://a.example")

        record = await recorder.get("d1")
        assert record["status"] == "deployed"
        assert record["deployed_url"] == "https://a.example"

    @pytest.mark.asyncio
    async def test_purge_secrets(self):
        recorder = InMemoryDeploymentRecorder()
        recorder.seed("d1", db_password="pw", jwt_secret="jwt", db_url=None)

        cleared = await recorder.purge_secrets("d1", health_status="healthy")

        record = await recorder.get("d1")
        assert cleared == ["db_password", "jwt_secret"]
        assert record["db_password"] is None
        assert record["secrets_cleaned"] is True
        assert record["health_status"] == "healthy"

    @pytest.mark.asyncio
    async def test_purge_unknown(self):
        with pytest.raises(ResourceNotFoundError):
            await InMemoryDeploymentRecorder().purge_secrets("nope", health_status="healthy")


class TestSecretCleanupService:
    """Tests for the post-deployment cleanup."""

    @staticmethod
    def _client(status: int) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(status)))

    @pytest.mark.asyncio
    async def test_healthy_app_is_cleaned(self):
        recorder = InMemoryDeploymentRecorder()
        recorder.seed("d1", service_role_key="srk")

        async with self._client(200) as client:
            cleared = await SecretCleanupService(client, recorder).run("d1", "app.example.com")

        assert cleared == ["service_role_key"]
        assert (await recorder.get("d1"))["secrets_cleaned"] is True

    @pytest.mark.asyncio
    async def test_unhealthy_app_postpones(self):
        recorder = InMemoryDeploymentRecorder()
        recorder.seed("d1", service_role_key="srk")

        async with self._client(503) as client:
            cleared = await SecretCleanupService(client, recorder).run("d1", "https://app.example.com")

        assert cleared == []
        assert (await recorder.get("d1"))["service_role_key"] == "srk"

    @pytest.mark.asyncio
    async def test_forced_cleanup_ignores_health(self):
        recorder = InMemoryDeploymentRecorder()
        recorder.seed("d1", setup_id="s")

        async with self._client(503) as client:
            cleared = await SecretCleanupService(client, recorder, force=True).run("d1", "https://app.example.com")

        assert cleared == ["setup_id"]
        assert (await recorder.get("d1"))["health_status"] == "unhealthy (503)"

    @pytest.mark.asyncio
    async def test_missing_url_skips_health_check_and_purges(self):
        recorder = InMemoryDeploymentRecorder()
        recorder.seed("d1", db_password="pw")
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(503)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            cleared = await SecretCleanupService(client, recorder).run("d1", "")

        assert cleared == ["db_password"]
        assert requests == []
        record = await recorder.get("d1")
        assert record["secrets_cleaned"] is True
        assert record["health_status"] == "skipped"

    @pytest.mark.asyncio
    async def test_only_first_fqdn_is_checked(self):
        recorder = InMemoryDeploymentRecorder()
        recorder.seed("d1", jwt_secret="jwt")
        hosts = []

        def handler(request):
            hosts.append(request.url.host)
            return httpx.Response(200)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            cleared = await SecretCleanupService(client, recorder).run(
                "d1", "https://app.example.com,https://www.app.example.com"
            )

        assert cleared == ["jwt_secret"]
        assert hosts == ["app.example.com"]

    @pytest.mark.asyncio
    async def test_already_cleaned_is_skipped(self):
        recorder = InMemoryDeploymentRecorder()
        recorder.seed("d1", secrets_cleaned=True, db_password="left")

        async with self._client(200) as client:
            cleared = await SecretCleanupService(client, recorder).run("d1", "https://app.example.com")

        assert cleared == []
