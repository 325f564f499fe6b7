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
from functools import lru_cache
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from ensure_index.activation import ActivationResult, EnsureIndexActivator
from ensure_index.capability import CapabilityHelper
from ensure_index.config import EnsureIndexConfig, get_sync_engine
from ensure_index.index.models import LiveIndexEntry, ReconciliationPlan, ReconciliationReport
from ensure_index.index.reconciler import EnsureIndexReconciler
from ensure_index.store.base import ContentStore
from ensure_index.store.models import TreeNode, name_of, normalize_path, parent_of
from ensure_index.store.sql_store import SqlContentStore
from ensure_index.tasks.scheduler import JobScheduler, create_job_scheduler

logger = logging.getLogger(__name__)


class EnsureIndexService:
    """Entry point shared by the CLI and the HTTP views"""

    def __init__(
        self,
        store: ContentStore,
        scheduler: Optional[JobScheduler] = None,
        supports_managed_indexes: Optional[Callable[[], bool]] = None,
    ):
        self.store = store
        self._scheduler = scheduler
        self.supports_managed_indexes = supports_managed_indexes or (lambda: True)

    @property
    def scheduler(self) -> JobScheduler:
        if self._scheduler is None:
            self._scheduler = create_job_scheduler()
        return self._scheduler

    def build_reconciler(self) -> EnsureIndexReconciler:
        return EnsureIndexReconciler(self.store)

    def activate(self, config: Union[EnsureIndexConfig, Mapping[str, Any]]) -> ActivationResult:
        activator = EnsureIndexActivator(self.scheduler, self.build_reconciler, self.supports_managed_indexes)
        return activator.activate(config)

    def plan(self, definitions_path: str, indexes_path: str) -> ReconciliationPlan:
        return self.build_reconciler().plan(definitions_path, indexes_path)

    def reconcile(self, definitions_path: str, indexes_path: str) -> ReconciliationReport:
        return self.build_reconciler().reconcile(definitions_path, indexes_path)

    def index_status(self, indexes_path: str) -> List[Dict[str, Any]]:
        root = self.store.read_tree(indexes_path)
        if root is None:
            return []
        return [LiveIndexEntry(name=child.name, path=child.path, node=child).to_dict() for child in root.children]

    def import_tree(self, path: str, data: Dict[str, Any], replace: bool = False):
        """Write a nested mapping as a subtree at path, creating missing ancestors"""
        path = normalize_path(path)
        if path == "/":
            raise ValueError("Cannot import over the root node")
        tree = TreeNode.from_dict(name_of(path), path, data)
        with self.store.transaction() as mutator:
            if replace and mutator.exists(path):
                mutator.delete_node(path)
            mutator.ensure_node(parent_of(path))
            mutator.create_tree(path, tree)
        logger.info(f"Imported {len(tree.children)} nodes below {path}")

    def export_tree(self, path: str) -> Optional[Dict[str, Any]]:
        tree = self.store.read_tree(path)
        return tree.to_dict() if tree is not None else None


@lru_cache(maxsize=1)
def get_ensure_index_service() -> EnsureIndexService:
    engine = get_sync_engine()
    store = SqlContentStore(engine)
    store.create_tables()
    return EnsureIndexService(store, supports_managed_indexes=CapabilityHelper(engine).supports_managed_indexes)
