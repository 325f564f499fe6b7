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
from typing import Any, Dict, Optional

from config.celery import app
from ensure_index.concurrent_control import create_lock
from ensure_index.config import settings
from ensure_index.tasks.job import EnsureIndexJob

logger = logging.getLogger(__name__)


def _build_reconciler():
    from ensure_index.service.ensure_index_service import get_ensure_index_service

    return get_ensure_index_service().build_reconciler()


async def _run_exclusive(definitions_path: str, indexes_path: str, lock_name: Optional[str]) -> Dict[str, Any]:
    job = EnsureIndexJob(_build_reconciler, definitions_path, indexes_path)
    if lock_name is None:
        return job()

    lock = create_lock(
        "redis",
        key=f"ensure_index:{lock_name}",
        redis_url=settings.redis_url,
        expire_time=settings.lock_expire_time,
        retry_times=0,
    )
    try:
        if not await lock.acquire():
            logger.info(f"Job [ {lock_name} ] is already running on another worker, skipping")
            return {"skipped": True, "reason": "already running"}
        return job()
    finally:
        await lock.close()


@app.task(bind=True)
def ensure_index_task(self, definitions_path: str, indexes_path: str, lock_name: str = None):
    """
    Reconcile the indexes under indexes_path with the definitions under definitions_path

    Args:
        definitions_path: Root of the desired index definitions
        indexes_path: Root of the live indexes
        lock_name: Name to serialize runs on; None allows concurrent runs
    """
    try:
        return asyncio.run(_run_exclusive(definitions_path, indexes_path, lock_name))
    except Exception as e:
        logger.error(f"Ensure index task failed for {definitions_path} => {indexes_path}: {e}", exc_info=True)
        raise
