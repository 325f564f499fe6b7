"""
Unit tests for the Celery ensure-index task and its per-job Redis lock.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from ensure_index.tasks import ensure_index_task as task_module
from tests.unit_test.conftest import DEFINITIONS_PATH, INDEXES_PATH

REPORT = {"counts": {"create": 1}, "failures": []}


@pytest.fixture
def job():
    with patch.object(task_module, "EnsureIndexJob") as job_cls:
        job_cls.return_value = MagicMock(return_value=REPORT)
        yield job_cls


@pytest.fixture
def lock():
    lock = MagicMock()
    lock.acquire = AsyncMock(return_value=True)
    lock.close = AsyncMock()
    with patch.object(task_module, "create_lock", return_value=lock) as factory:
        lock.factory = factory
        yield lock


class TestRunExclusive:
    @pytest.mark.asyncio
    async def test_runs_job_under_lock(self, job, lock):
        result = await task_module._run_exclusive(DEFINITIONS_PATH, INDEXES_PATH, "Ensure index x")

        assert result == REPORT
        kwargs = lock.factory.call_args.kwargs
        assert kwargs["key"] == "ensure_index:Ensure index x"
        assert kwargs["retry_times"] == 0
        lock.acquire.assert_awaited_once()
        lock.close.assert_awaited_once()
        job.assert_called_once_with(task_module._build_reconciler, DEFINITIONS_PATH, INDEXES_PATH)

    @pytest.mark.asyncio
    async def test_skips_when_lock_is_held(self, job, lock):
        lock.acquire.return_value = False

        result = await task_module._run_exclusive(DEFINITIONS_PATH, INDEXES_PATH, "Ensure index x")

        assert result == {"skipped": True, "reason": "already running"}
        job.return_value.assert_not_called()
        lock.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_lock_closed_when_job_fails(self, job, lock):
        job.return_value.side_effect = RuntimeError("boom")

        with pytest.raises(RuntimeError):
            await task_module._run_exclusive(DEFINITIONS_PATH, INDEXES_PATH, "Ensure index x")
        lock.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_no_lock_without_name(self, job, lock):
        result = await task_module._run_exclusive(DEFINITIONS_PATH, INDEXES_PATH, None)

        assert result == REPORT
        lock.factory.assert_not_called()


class TestEnsureIndexTask:
    def test_returns_report(self, job):
        result = task_module.ensure_index_task.run(DEFINITIONS_PATH, INDEXES_PATH)
        assert result == REPORT

    def test_reraises_failures(self, job):
        job.return_value.side_effect = RuntimeError("store offline")
        with pytest.raises(RuntimeError, match="store offline"):
            task_module.ensure_index_task.run(DEFINITIONS_PATH, INDEXES_PATH)
