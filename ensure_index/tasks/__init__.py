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

from ensure_index.tasks.job import EnsureIndexJob, job_name
from ensure_index.tasks.scheduler import (
    CeleryJobScheduler,
    JobResult,
    JobScheduler,
    LocalJobScheduler,
    create_job_scheduler,
)

__all__ = [
    "CeleryJobScheduler",
    "EnsureIndexJob",
    "JobResult",
    "JobScheduler",
    "LocalJobScheduler",
    "create_job_scheduler",
    "job_name",
]
