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
from datetime import datetime
from typing import Callable, Dict, Optional

from ensure_index.checksum import DEFAULT_EXCLUDED_PROPERTIES, ChecksumGenerator
from ensure_index.exceptions import ActionApplyError, DefinitionsNotFoundError
from ensure_index.index.models import (
    PROP_CHECKSUM,
    PROP_LAST_REINDEX,
    PROP_REINDEX_COUNT,
    Action,
    ActionOutcome,
    ActionType,
    ReconciliationPlan,
    ReconciliationReport,
)
from ensure_index.index.planner import IndexPlanner
from ensure_index.store.base import REINDEX_FLAG, ContentStore, StoreMutator
from ensure_index.store.models import join_path, normalize_path, utc_now

logger = logging.getLogger(__name__)


class EnsureIndexReconciler:
    """
    Converges the live indexes under one path to the definitions under another.

    A run reads both subtrees once, plans every action, then applies each
    action in its own store transaction. A failing action is reported and the
    remaining actions still run.
    """

    def __init__(
        self,
        store: ContentStore,
        checksum_generator: Optional[ChecksumGenerator] = None,
        planner: Optional[IndexPlanner] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.checksum_generator = checksum_generator or ChecksumGenerator(store, DEFAULT_EXCLUDED_PROPERTIES)
        self.planner = planner or IndexPlanner(self.checksum_generator)
        self.clock = clock

    def reconcile(self, definitions_path: str, indexes_path: str) -> ReconciliationReport:
        logger.info(f"Ensuring indexes [ {definitions_path} ~> {indexes_path} ]")
        plan = self.plan(definitions_path, indexes_path)
        logger.info(f"Planned {len(plan.actions)} index actions for {plan.indexes_path}")

        report = self.apply(plan)
        if report.failures:
            logger.error(f"Index reconciliation for {plan.indexes_path} finished with failures: {report.failed_names}")
        logger.info(f"Index reconciliation for {plan.indexes_path} completed: {report.counts}")
        return report

    def plan(self, definitions_path: str, indexes_path: str) -> ReconciliationPlan:
        """
        Compute the actions for a run without touching the store

        Raises:
            DefinitionsNotFoundError: definitions_path does not resolve
        """
        definitions_path = normalize_path(definitions_path)
        indexes_path = normalize_path(indexes_path)

        definitions_root, indexes_root = self.store.read_trees([definitions_path, indexes_path])
        if definitions_root is None:
            raise DefinitionsNotFoundError(definitions_path)
        if indexes_root is None:
            logger.info(f"Indexes path {indexes_path} does not exist and will be created")

        return self.planner.build_plan(definitions_path, indexes_path, definitions_root, indexes_root)

    def apply(self, plan: ReconciliationPlan) -> ReconciliationReport:
        if plan.create_indexes_root:
            with self.store.transaction() as mutator:
                mutator.ensure_node(plan.indexes_path)

        report = ReconciliationReport(definitions_path=plan.definitions_path, indexes_path=plan.indexes_path)
        for action in plan.actions:
            try:
                self.apply_action(plan, action)
            except ActionApplyError as e:
                logger.error(str(e), exc_info=e.cause)
                report.outcomes.append(
                    ActionOutcome(name=action.name, action=action.type, success=False, error=str(e.cause))
                )
            else:
                report.outcomes.append(ActionOutcome(name=action.name, action=action.type, reason=action.reason))
        return report

    def apply_action(self, plan: ReconciliationPlan, action: Action):
        if action.type in (ActionType.NOOP, ActionType.SKIP):
            logger.debug(f"Index {action.name}: {action.type.value} {action.reason or ''}".rstrip())
            return

        handlers = {
            ActionType.CREATE: self._create,
            ActionType.UPDATE_PROPERTIES: self._update_properties,
            ActionType.UPDATE_PROPERTIES_AND_REINDEX: self._update_and_reindex,
            ActionType.FORCE_REINDEX: self._update_and_reindex,
            ActionType.DELETE: self._delete,
        }
        try:
            with self.store.transaction() as mutator:
                handlers[action.type](mutator, plan, action)
        except Exception as e:
            raise ActionApplyError(action.name, action.type.value, e) from e
        logger.info(f"Applied {action.type.value} to index {join_path(plan.indexes_path, action.name)}")

    def _bookkeeping(self, checksum: str, reindex_count: int) -> Dict:
        return {
            PROP_CHECKSUM: checksum,
            PROP_LAST_REINDEX: self.clock().isoformat(),
            PROP_REINDEX_COUNT: reindex_count,
            REINDEX_FLAG: True,
        }

    def _create(self, mutator: StoreMutator, plan: ReconciliationPlan, action: Action):
        definition = plan.definitions[action.name]
        path = join_path(plan.indexes_path, action.name)
        mutator.create_tree(path, definition.content_tree(), extra_properties=self._bookkeeping(action.checksum, 1))

    def _update_properties(self, mutator: StoreMutator, plan: ReconciliationPlan, action: Action):
        live = plan.live_entries[action.name]
        properties = dict(action.changed_properties)
        properties[PROP_CHECKSUM] = action.checksum
        mutator.set_properties(live.path, properties, remove=action.removed_properties)

    def _update_and_reindex(self, mutator: StoreMutator, plan: ReconciliationPlan, action: Action):
        definition = plan.definitions[action.name]
        live = plan.live_entries[action.name]
        bookkeeping = self._bookkeeping(action.checksum, live.reindex_count + 1)

        if definition.recreate_on_update:
            mutator.delete_node(live.path)
            mutator.create_tree(live.path, definition.content_tree(), extra_properties=bookkeeping)
            return

        properties = dict(definition.properties)
        properties.update(bookkeeping)
        mutator.set_properties(live.path, properties, remove=action.removed_properties)
        if action.children_changed:
            for child in live.node.children:
                mutator.delete_node(child.path)
            for child in definition.node.children:
                mutator.create_tree(join_path(live.path, child.name), child)

    def _delete(self, mutator: StoreMutator, plan: ReconciliationPlan, action: Action):
        mutator.delete_node(plan.live_entries[action.name].path)
