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

import logging
import threading
from abc import ABC, abstractmethod
from concurrent.futures import Future, ThreadPoolExecutor
from functools import partial
from typing import Any, Callable, Dict, Optional

from ensure_index.config import settings

logger = logging.getLogger(__name__)


class JobResult:
    """Represents the result of a job execution"""

    def __init__(self, name: str, success: bool = True, error: str = None, data: Any = None):
        self.name = name
        self.success = success
        self.error = error
        self.data = data

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "success": self.success, "error": self.error, "data": self.data}


class JobScheduler(ABC):
    """Runs jobs in the background; named jobs can be kept from overlapping"""

    @abstractmethod
    def submit(self, job: Callable[[], Any], name: str, allow_concurrent: bool = False) -> bool:
        """
        Submit job for asynchronous execution

        Args:
            job: Zero-argument callable
            name: Job name; at most one job per name runs at a time unless allow_concurrent
            allow_concurrent: Run even if a job with the same name is in flight

        Returns:
            True if the job was accepted, False if it was dropped because the
            same name is already running
        """
        pass

    @abstractmethod
    def get_job_status(self, name: str) -> Optional[JobResult]:
        """Result of the last finished job with this name, or None"""
        pass


class LocalJobScheduler(JobScheduler):
    """In-process thread pool; a second submit for a running name is dropped, not queued"""

    def __init__(self, max_workers: Optional[int] = None):
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers or settings.max_workers, thread_name_prefix="ensure-index"
        )
        self._lock = threading.RLock()
        self._running: Dict[str, Future] = {}
        self._results: Dict[str, JobResult] = {}

    def submit(self, job: Callable[[], Any], name: str, allow_concurrent: bool = False) -> bool:
        with self._lock:
            running = self._running.get(name)
            if not allow_concurrent and running is not None and not running.done():
                logger.info(f"Job [ {name} ] is already running, dropping this trigger")
                return False

            future = self._executor.submit(self._execute, name, job)
            if not allow_concurrent:
                self._running[name] = future
                future.add_done_callback(partial(self._forget, name))
        logger.debug(f"Submitted job [ {name} ]")
        return True

    def _execute(self, name: str, job: Callable[[], Any]) -> JobResult:
        try:
            result = JobResult(name, success=True, data=job())
        except Exception as e:
            logger.error(f"Job [ {name} ] failed: {e}", exc_info=True)
            result = JobResult(name, success=False, error=str(e))
        with self._lock:
            self._results[name] = result
        return result

    def _forget(self, name: str, future: Future):
        with self._lock:
            if self._running.get(name) is future:
                del self._running[name]

    def is_running(self, name: str) -> bool:
        with self._lock:
            future = self._running.get(name)
            return future is not None and not future.done()

    def wait(self, name: str, timeout: Optional[float] = None) -> Optional[JobResult]:
        """Block until the in-flight job with this name finishes and return its result"""
        with self._lock:
            future = self._running.get(name)
        if future is not None:
            future.result(timeout=timeout)
        return self.get_job_status(name)

    def get_job_status(self, name: str) -> Optional[JobResult]:
        with self._lock:
            return self._results.get(name)

    def shutdown(self, wait: bool = True):
        self._executor.shutdown(wait=wait)


class CeleryJobScheduler(JobScheduler):
    """
    Dispatches reconciliation runs to Celery workers.

    Only EnsureIndexJob can cross the broker; the worker takes a Redis lock
    named after the job and drops the run if another worker holds it.
    """

    def __init__(self):
        self._task_ids: Dict[str, str] = {}

    def submit(self, job: Callable[[], Any], name: str, allow_concurrent: bool = False) -> bool:
        from ensure_index.tasks.ensure_index_task import ensure_index_task
        from ensure_index.tasks.job import EnsureIndexJob

        if not isinstance(job, EnsureIndexJob):
            raise TypeError(f"Celery scheduler can only run EnsureIndexJob, got {type(job).__name__}")

        task = ensure_index_task.apply_async(
            kwargs={
                "definitions_path": job.definitions_path,
                "indexes_path": job.indexes_path,
                "lock_name": None if allow_concurrent else name,
            }
        )
        self._task_ids[name] = task.id
        logger.debug(f"Scheduled job [ {name} ] as celery task {task.id}")
        return True

    def get_job_status(self, name: str) -> Optional[JobResult]:
        task_id = self._task_ids.get(name)
        if task_id is None:
            return None
        try:
            from celery.result import AsyncResult

            result = AsyncResult(task_id)

            if result.state == "SUCCESS":
                return JobResult(name, success=True, data=result.result)
            elif result.state == "FAILURE":
                return JobResult(name, success=False, error=str(result.info))
            else:
                return JobResult(name, success=False, error=f"Task {result.state.lower()}")

        except Exception as e:
            logger.error(f"Failed to get task status for {task_id}: {str(e)}")
            return JobResult(name, success=False, error=str(e))


def create_job_scheduler(scheduler_type: Optional[str] = None) -> JobScheduler:
    scheduler_type = scheduler_type or settings.scheduler_type
    if scheduler_type == "local":
        return LocalJobScheduler()
    elif scheduler_type == "celery":
        return CeleryJobScheduler()
    raise ValueError(f"Unsupported scheduler type: {scheduler_type}")
