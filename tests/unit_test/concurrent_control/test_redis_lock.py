"""
Unit tests for RedisLock, the lock Celery workers use to keep two runs of the
same ensure-index job from overlapping.

Redis is mocked at the module level; no server is needed.
"""

import asyncio
import time
from unittest.mock import AsyncMock, patch

import pytest

from ensure_index.concurrent_control import RedisLock, create_lock


@pytest.fixture
def redis_client():
    """A mocked redis.asyncio client that grants every lock and loads the release script"""
    client = AsyncMock()
    client.ping.return_value = True
    client.script_load.return_value = "sha123"
    client.set.return_value = True
    client.evalsha.return_value = 1
    with patch("ensure_index.concurrent_control.redis_lock.redis") as redis_module:
        redis_module.from_url.return_value = client
        yield client


class TestRedisLockInitialization:
    def test_defaults(self):
        lock = RedisLock(key="ensure_index:job")
        assert lock.key == "ensure_index:job"
        assert lock._redis_url == "redis://localhost:6379"
        assert lock._expire_time == 30
        assert lock._retry_times == 3
        assert lock._retry_delay == 0.1
        assert lock._redis_client is None
        assert not lock.is_locked()

    def test_custom_parameters(self):
        lock = RedisLock(
            key="custom", redis_url="redis://cache:6380", expire_time=3600, retry_times=0, retry_delay=0.2
        )
        assert lock._redis_url == "redis://cache:6380"
        assert lock._expire_time == 3600
        assert lock._retry_times == 0
        assert lock._retry_delay == 0.2

    @pytest.mark.parametrize("key", ["", None])
    def test_key_is_required(self, key):
        with pytest.raises(ValueError, match="Redis lock key is required"):
            RedisLock(key=key)

    def test_factory(self):
        lock = create_lock("redis", key="factory")
        assert isinstance(lock, RedisLock)
        assert lock.key == "factory"

    def test_factory_rejects_unknown_type(self):
        with pytest.raises(ValueError, match="Unsupported lock type"):
            create_lock("zookeeper", key="factory")


class TestRedisLockOperations:
    @pytest.mark.asyncio
    async def test_acquire_and_release(self, redis_client):
        lock = RedisLock(key="ensure_index:job")

        assert await lock.acquire() is True
        assert lock.is_locked()
        assert len(lock._lock_value) == 36

        args, kwargs = redis_client.set.call_args
        assert args[0] == "ensure_index:job"
        assert kwargs["nx"] is True
        assert kwargs["ex"] == 30

        value = lock._lock_value
        await lock.release()
        assert not lock.is_locked()
        redis_client.evalsha.assert_called_once_with("sha123", 1, "ensure_index:job", value)

    @pytest.mark.asyncio
    async def test_reacquire_while_held_is_free(self, redis_client):
        lock = RedisLock(key="held")
        await lock.acquire()
        assert await lock.acquire() is True
        assert redis_client.set.call_count == 1

    @pytest.mark.asyncio
    async def test_context_manager_releases_on_error(self, redis_client):
        lock = RedisLock(key="ctx")
        with pytest.raises(ValueError):
            async with lock:
                assert lock.is_locked()
                raise ValueError("boom")
        assert not lock.is_locked()
        redis_client.evalsha.assert_called_once()

    @pytest.mark.asyncio
    async def test_context_manager_raises_when_not_acquired(self, redis_client):
        redis_client.set.return_value = False
        lock = RedisLock(key="busy", retry_times=0)
        with pytest.raises(RuntimeError, match="Could not acquire lock busy"):
            async with lock:
                pass

    @pytest.mark.asyncio
    async def test_eval_fallback_without_script_sha(self, redis_client):
        redis_client.script_load.return_value = None
        lock = RedisLock(key="fallback")

        await lock.acquire()
        await lock.release()

        redis_client.eval.assert_called_once()
        assert "redis.call" in redis_client.eval.call_args[0][0]
        redis_client.evalsha.assert_not_called()

    @pytest.mark.asyncio
    async def test_unique_values_per_holder(self, redis_client):
        first, second = RedisLock(key="a"), RedisLock(key="b")
        await first.acquire()
        await second.acquire()
        assert first._lock_value != second._lock_value

    @pytest.mark.asyncio
    async def test_close_releases_and_drops_client(self, redis_client):
        lock = RedisLock(key="close")
        await lock.acquire()

        await lock.close()

        assert not lock.is_locked()
        redis_client.evalsha.assert_called_once()
        redis_client.close.assert_called_once()
        assert lock._redis_client is None


class TestRedisLockRetry:
    @pytest.mark.asyncio
    async def test_single_attempt_with_zero_retries(self, redis_client):
        redis_client.set.return_value = False
        lock = RedisLock(key="once", retry_times=0, retry_delay=0.01)

        assert await lock.acquire() is False
        assert redis_client.set.call_count == 1

    @pytest.mark.asyncio
    async def test_retries_until_acquired(self, redis_client):
        redis_client.set.side_effect = [False, False, True]
        lock = RedisLock(key="retry", retry_times=3, retry_delay=0.05)

        start = time.monotonic()
        assert await lock.acquire() is True
        assert time.monotonic() - start >= 0.1
        assert redis_client.set.call_count == 3

    @pytest.mark.asyncio
    async def test_retry_exhaustion(self, redis_client):
        redis_client.set.return_value = False
        lock = RedisLock(key="exhausted", retry_times=2, retry_delay=0.01)

        assert await lock.acquire() is False
        assert redis_client.set.call_count == 3

    @pytest.mark.asyncio
    async def test_timeout(self, redis_client):
        redis_client.set.return_value = False
        lock = RedisLock(key="timeout", retry_delay=0.1)

        start = time.monotonic()
        assert await lock.acquire(timeout=0.3) is False
        elapsed = time.monotonic() - start
        assert 0.25 <= elapsed <= 0.6
        assert not lock.is_locked()

    @pytest.mark.asyncio
    async def test_second_holder_is_refused(self, redis_client):
        redis_client.set.side_effect = [True, False, False]
        first = RedisLock(key="ensure_index:job", retry_times=1, retry_delay=0.01)
        second = RedisLock(key="ensure_index:job", retry_times=1, retry_delay=0.01)

        assert await first.acquire() is True
        assert await second.acquire() is False
        await first.release()
        assert not first.is_locked()


class TestRedisLockErrors:
    @pytest.mark.asyncio
    async def test_unreachable_redis(self, redis_client):
        redis_client.ping.side_effect = Exception("Connection refused")
        with pytest.raises(ConnectionError, match="Cannot connect to Redis"):
            await RedisLock(key="down").acquire()

    @pytest.mark.asyncio
    async def test_set_errors_count_as_failed_attempts(self, redis_client):
        redis_client.set.side_effect = Exception("READONLY")
        lock = RedisLock(key="readonly", retry_times=1, retry_delay=0.01)

        assert await lock.acquire() is False
        assert not lock.is_locked()

    @pytest.mark.asyncio
    async def test_release_without_acquire(self, redis_client):
        await RedisLock(key="never").release()
        redis_client.evalsha.assert_not_called()
        redis_client.eval.assert_not_called()

    @pytest.mark.asyncio
    async def test_release_failure_still_clears_state(self, redis_client):
        redis_client.evalsha.side_effect = Exception("Release failed")
        lock = RedisLock(key="release")
        await lock.acquire()

        await lock.release()

        assert not lock.is_locked()

    @pytest.mark.asyncio
    async def test_independent_keys_run_concurrently(self, redis_client):
        finished = []

        async def worker(i):
            async with RedisLock(key=f"ensure_index:job-{i}"):
                await asyncio.sleep(0.01)
                finished.append(i)

        await asyncio.gather(*[worker(i) for i in range(3)])
        assert sorted(finished) == [0, 1, 2]
