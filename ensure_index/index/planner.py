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
from typing import Dict, Iterable, List, Optional, Tuple

from ensure_index.checksum import ChecksumGenerator
from ensure_index.config import settings
from ensure_index.exceptions import InvalidDefinitionError
from ensure_index.index.models import (
    PROP_PRIMARY_TYPE,
    Action,
    ActionType,
    IndexDefinition,
    LiveIndexEntry,
    ReconciliationPlan,
)
from ensure_index.store.models import TreeNode

logger = logging.getLogger(__name__)

_MISSING = object()


class IndexPlanner:
    """Matches desired definitions to live indexes and decides one action per definition"""

    def __init__(
        self,
        checksum_generator: ChecksumGenerator,
        non_structural_properties: Optional[Iterable[str]] = None,
        grouping_node_types: Optional[Iterable[str]] = None,
    ):
        self.checksum_generator = checksum_generator
        if non_structural_properties is None:
            non_structural_properties = settings.non_structural_properties
        if grouping_node_types is None:
            grouping_node_types = settings.grouping_node_types
        self.non_structural_properties = frozenset(non_structural_properties)
        self.grouping_node_types = frozenset(grouping_node_types)

    def build_plan(
        self,
        definitions_path: str,
        indexes_path: str,
        definitions_root: TreeNode,
        indexes_root: Optional[TreeNode],
    ) -> ReconciliationPlan:
        definitions = self.load_definitions(definitions_root)
        live_entries = self.load_live_entries(indexes_root)

        actions = [self.decide(definition, live_entries.get(name)) for name, definition in definitions.items()]
        return ReconciliationPlan(
            definitions_path=definitions_path,
            indexes_path=indexes_path,
            actions=actions,
            definitions=definitions,
            live_entries=live_entries,
            create_indexes_root=indexes_root is None,
        )

    def load_definitions(self, root: TreeNode) -> Dict[str, IndexDefinition]:
        """All definitions below root, keyed and ordered by name"""
        found: Dict[str, IndexDefinition] = {}
        self._collect_definitions(root, found)
        return dict(sorted(found.items()))

    def _collect_definitions(self, node: TreeNode, found: Dict[str, IndexDefinition]):
        for child in node.children:
            if self.is_grouping_node(child):
                self._collect_definitions(child, found)
                continue
            if child.name in found:
                logger.warning(
                    f"Ignoring duplicate index definition {child.path}; {found[child.name].path} is already defined"
                )
                continue
            found[child.name] = IndexDefinition(name=child.name, path=child.path, node=child)

    def is_grouping_node(self, node: TreeNode) -> bool:
        return node.properties.get(PROP_PRIMARY_TYPE) in self.grouping_node_types

    def load_live_entries(self, root: Optional[TreeNode]) -> Dict[str, LiveIndexEntry]:
        if root is None:
            return {}
        return {child.name: LiveIndexEntry(name=child.name, path=child.path, node=child) for child in root.children}

    def definition_checksum(self, definition: IndexDefinition) -> str:
        return self.checksum_generator.checksum_tree(definition.content_tree())

    def decide(self, definition: IndexDefinition, live: Optional[LiveIndexEntry]) -> Action:
        name = definition.name

        if definition.disabled:
            logger.debug(f"Skipping index definition {definition.path}: disabled")
            return Action(name=name, type=ActionType.SKIP, reason="disabled by definition")

        if definition.delete:
            if live is None:
                return Action(name=name, type=ActionType.NOOP, reason="marked for deletion and already absent")
            return Action(name=name, type=ActionType.DELETE, reason="marked for deletion")

        try:
            definition.validate()
        except InvalidDefinitionError as e:
            logger.warning(f"Skipping index definition {definition.path}: {e}")
            return Action(name=name, type=ActionType.SKIP, reason=str(e))

        checksum = self.definition_checksum(definition)
        if live is None:
            return Action(name=name, type=ActionType.CREATE, checksum=checksum)

        changed, removed, children_changed = self.diff(definition, live)

        if definition.force_reindex:
            return Action(
                name=name,
                type=ActionType.FORCE_REINDEX,
                checksum=checksum,
                reason="force reindex requested by definition",
                changed_properties=changed,
                removed_properties=removed,
                children_changed=children_changed,
            )

        if live.checksum == checksum:
            return Action(name=name, type=ActionType.NOOP, checksum=checksum)

        structural = [prop for prop in [*changed, *removed] if prop not in self.non_structural_properties]
        if children_changed or structural:
            reason = "child structure changed" if children_changed else f"changed: {', '.join(sorted(structural))}"
            return Action(
                name=name,
                type=ActionType.UPDATE_PROPERTIES_AND_REINDEX,
                checksum=checksum,
                reason=reason,
                changed_properties=changed,
                removed_properties=removed,
                children_changed=children_changed,
            )

        return Action(
            name=name,
            type=ActionType.UPDATE_PROPERTIES,
            checksum=checksum,
            changed_properties=changed,
            removed_properties=removed,
            children_changed=children_changed,
        )

    def diff(self, definition: IndexDefinition, live: LiveIndexEntry) -> Tuple[Dict, Tuple[str, ...], bool]:
        """
        Compare desired and live content.

        Returns:
            (properties to set, property names to remove, whether the child structure differs)
        """
        ignored = self.checksum_generator.excluded_properties
        desired = {k: v for k, v in definition.properties.items() if k not in ignored}
        actual = {k: v for k, v in live.properties.items() if k not in ignored}

        changed = {k: v for k, v in desired.items() if actual.get(k, _MISSING) != v}
        removed = tuple(sorted(k for k in actual if k not in desired))
        children_changed = self._children_digest(definition.node.children) != self._children_digest(
            live.node.children
        )
        return changed, removed, children_changed

    def _children_digest(self, children: List[TreeNode]) -> str:
        return self.checksum_generator.checksum_tree(TreeNode(name="", path="/", children=children))
