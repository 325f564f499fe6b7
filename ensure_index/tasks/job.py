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
from typing import Any, Callable, Dict

from ensure_index.exceptions import DefinitionsNotFoundError
from ensure_index.index.reconciler import EnsureIndexReconciler

logger = logging.getLogger(__name__)


def job_name(definitions_path: str, indexes_path: str) -> str:
    return f"Ensure index {indexes_path} => {definitions_path}"


class EnsureIndexJob:
    """One reconciliation run for a (definitions, indexes) pair, runnable by any scheduler"""

    def __init__(
        self,
        reconciler_factory: Callable[[], EnsureIndexReconciler],
        definitions_path: str,
        indexes_path: str,
    ):
        self.reconciler_factory = reconciler_factory
        self.definitions_path = definitions_path
        self.indexes_path = indexes_path

    @property
    def name(self) -> str:
        return job_name(self.definitions_path, self.indexes_path)

    def __call__(self) -> Dict[str, Any]:
        reconciler = self.reconciler_factory()
        try:
            report = reconciler.reconcile(self.definitions_path, self.indexes_path)
        except DefinitionsNotFoundError as e:
            logger.error(f"Aborting [ {self.name} ]: {e}")
            raise
        return report.to_dict()

    def __repr__(self) -> str:
        return f"EnsureIndexJob({self.definitions_path!r}, {self.indexes_path!r})"
