# Copyright 2025 ApeCloud, Inc.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

import asyncio
import logging
import time
import uuid
from typing import Optional

import redis.asyncio as redis

logger = logging.getLogger(__name__)

# Delete the key only while it still holds our value
RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""


class RedisLock:
    """
    Distributed lock backed by a single Redis key.

    The key is set with NX and an expiry, so a crashed holder cannot block
    other workers forever; release goes through a Lua script so a holder never
    deletes a lock that expired and was taken by someone else.
    """

    def __init__(
        self,
        key: str,
        redis_url: str = "redis://localhost:6379",
        expire_time: int = 30,
        retry_times: int = 3,
        retry_delay: float = 0.1,
    ):
        if not key:
            raise ValueError("Redis lock key is required")
        self._key = key
        self._redis_url = redis_url
        self._expire_time = expire_time
        self._retry_times = retry_times
        self._retry_delay = retry_delay
        self._redis_client = None
        self._release_script_sha: Optional[str] = None
        self._lock_value: Optional[str] = None

    @property
    def key(self) -> str:
        return self._key

    async def _get_client(self):
        if self._redis_client is None:
            client = redis.from_url(self._redis_url, decode_responses=True)
            try:
                await client.ping()
            except Exception as e:
                raise ConnectionError(f"Cannot connect to Redis at {self._redis_url}: {e}") from e
            try:
                self._release_script_sha = await client.script_load(RELEASE_SCRIPT)
            except Exception as e:
                logger.warning(f"Failed to load lock release script, falling back to EVAL: {e}")
                self._release_script_sha = None
            self._redis_client = client
        return self._redis_client

    async def acquire(self, timeout: Optional[float] = None) -> bool:
        """
        Try to take the lock.

        Without a timeout the lock is attempted retry_times + 1 times; with a
        timeout attempts continue until it elapses.
        """
        if self._lock_value is not None:
            return True

        client = await self._get_client()
        lock_value = str(uuid.uuid4())
        deadline = time.monotonic() + timeout if timeout is not None else None
        attempt = 0

        while True:
            try:
                acquired = await client.set(self._key, lock_value, nx=True, ex=self._expire_time)
            except Exception as e:
                logger.warning(f"Redis error while acquiring lock {self._key}: {e}")
                acquired = False

            if acquired:
                self._lock_value = lock_value
                logger.debug(f"Acquired lock {self._key}")
                return True

            attempt += 1
            if deadline is not None:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return False
                await asyncio.sleep(min(self._retry_delay, remaining))
                continue
            if attempt > self._retry_times:
                return False
            await asyncio.sleep(self._retry_delay)

    async def release(self):
        if self._lock_value is None:
            return

        lock_value = self._lock_value
        try:
            client = await self._get_client()
            if self._release_script_sha:
                await client.evalsha(self._release_script_sha, 1, self._key, lock_value)
            else:
                await client.eval(RELEASE_SCRIPT, 1, self._key, lock_value)
            logger.debug(f"Released lock {self._key}")
        except Exception as e:
            logger.error(f"Failed to release lock {self._key}: {e}")
        finally:
            self._lock_value = None

    async def close(self):
        """Release the lock if held and drop the connection"""
        await self.release()
        if self._redis_client is not None:
            try:
                await self._redis_client.close()
            finally:
                self._redis_client = None
                self._release_script_sha = None

    def is_locked(self) -> bool:
        return self._lock_value is not None

    async def __aenter__(self):
        if not await self.acquire():
            raise RuntimeError(f"Could not acquire lock {self._key}")
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.release()
