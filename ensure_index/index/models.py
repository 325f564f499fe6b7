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

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from ensure_index.exceptions import InvalidDefinitionError
from ensure_index.store.base import REINDEX_FLAG
from ensure_index.store.models import TreeNode

# Directives understood on a definition; never copied to the live index
PROP_IGNORE = "ignore"
PROP_DISABLED = "disabled"
PROP_DELETE = "delete"
PROP_FORCE_REINDEX = "forceReindex"
PROP_RECREATE_ON_UPDATE = "recreateOnUpdate"
DIRECTIVE_PROPERTIES = frozenset(
    {PROP_IGNORE, PROP_DISABLED, PROP_DELETE, PROP_FORCE_REINDEX, PROP_RECREATE_ON_UPDATE}
)

# Bookkeeping maintained on the live index by the reconciler
PROP_CHECKSUM = "checksum"
PROP_LAST_REINDEX = "lastReindex"
PROP_REINDEX_COUNT = "reindexCount"
BOOKKEEPING_PROPERTIES = frozenset({PROP_CHECKSUM, PROP_LAST_REINDEX, PROP_REINDEX_COUNT, REINDEX_FLAG})

PROP_TYPE = "type"
PROP_PRIMARY_TYPE = "jcr:primaryType"


def is_true(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return value is True


class ActionType(str, Enum):
    NOOP = "noop"
    CREATE = "create"
    UPDATE_PROPERTIES = "update_properties"
    UPDATE_PROPERTIES_AND_REINDEX = "update_properties_and_reindex"
    FORCE_REINDEX = "force_reindex"
    DELETE = "delete"
    SKIP = "skip"


@dataclass
class IndexDefinition:
    """Desired state of one index, as declared under the definitions root"""

    name: str
    path: str
    node: TreeNode

    @property
    def type(self) -> Optional[str]:
        value = self.node.properties.get(PROP_TYPE)
        return value if isinstance(value, str) else None

    @property
    def properties(self) -> Dict[str, Any]:
        return {
            name: value
            for name, value in self.node.properties.items()
            if name not in DIRECTIVE_PROPERTIES and name not in BOOKKEEPING_PROPERTIES
        }

    @property
    def disabled(self) -> bool:
        return is_true(self.node.properties.get(PROP_IGNORE)) or is_true(self.node.properties.get(PROP_DISABLED))

    @property
    def delete(self) -> bool:
        return is_true(self.node.properties.get(PROP_DELETE))

    @property
    def force_reindex(self) -> bool:
        return is_true(self.node.properties.get(PROP_FORCE_REINDEX))

    @property
    def recreate_on_update(self) -> bool:
        return is_true(self.node.properties.get(PROP_RECREATE_ON_UPDATE))

    def validate(self):
        """
        Raises:
            InvalidDefinitionError: the definition cannot be applied as written
        """
        if not self.type or not self.type.strip():
            raise InvalidDefinitionError(f"invalid definition: missing '{PROP_TYPE}'")

    def content_tree(self) -> TreeNode:
        """The subtree that gets applied: the definition without its directives"""
        return TreeNode(name=self.name, path=self.path, properties=self.properties, children=self.node.children)


@dataclass
class LiveIndexEntry:
    """Actual state of one index under the indexes root"""

    name: str
    path: str
    node: TreeNode

    @property
    def checksum(self) -> Optional[str]:
        return self.node.properties.get(PROP_CHECKSUM)

    @property
    def reindex_count(self) -> int:
        try:
            return int(self.node.properties.get(PROP_REINDEX_COUNT) or 0)
        except (TypeError, ValueError):
            return 0

    @property
    def last_reindex(self) -> Optional[str]:
        return self.node.properties.get(PROP_LAST_REINDEX)

    @property
    def reindex_in_progress(self) -> bool:
        return is_true(self.node.properties.get(REINDEX_FLAG))

    @property
    def properties(self) -> Dict[str, Any]:
        return {name: value for name, value in self.node.properties.items() if name not in BOOKKEEPING_PROPERTIES}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "path": self.path,
            "type": self.node.properties.get(PROP_TYPE),
            "checksum": self.checksum,
            "lastReindex": self.last_reindex,
            "reindexCount": self.reindex_count,
            "reindex": self.reindex_in_progress,
        }


@dataclass(frozen=True)
class Action:
    name: str
    type: ActionType
    checksum: Optional[str] = None
    reason: Optional[str] = None
    changed_properties: Dict[str, Any] = field(default_factory=dict)
    removed_properties: Tuple[str, ...] = ()
    children_changed: bool = False

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"name": self.name, "action": self.type.value}
        if self.reason:
            result["reason"] = self.reason
        if self.checksum:
            result["checksum"] = self.checksum
        if self.changed_properties:
            result["changed_properties"] = sorted(self.changed_properties)
        if self.removed_properties:
            result["removed_properties"] = list(self.removed_properties)
        return result


@dataclass
class ReconciliationPlan:
    """Actions for one run, computed from a single read of both subtrees"""

    definitions_path: str
    indexes_path: str
    actions: List[Action] = field(default_factory=list)
    definitions: Dict[str, IndexDefinition] = field(default_factory=dict)
    live_entries: Dict[str, LiveIndexEntry] = field(default_factory=dict)
    create_indexes_root: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "definitions_path": self.definitions_path,
            "indexes_path": self.indexes_path,
            "create_indexes_root": self.create_indexes_root,
            "actions": [action.to_dict() for action in self.actions],
        }


@dataclass
class ActionOutcome:
    name: str
    action: ActionType
    success: bool = True
    error: Optional[str] = None
    reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"name": self.name, "action": self.action.value, "success": self.success}
        if self.error:
            result["error"] = self.error
        if self.reason:
            result["reason"] = self.reason
        return result


@dataclass
class ReconciliationReport:
    definitions_path: str
    indexes_path: str
    outcomes: List[ActionOutcome] = field(default_factory=list)

    @property
    def counts(self) -> Dict[str, int]:
        """Successfully applied actions per kind; failures are listed separately"""
        counts = {action_type.value: 0 for action_type in ActionType}
        for outcome in self.outcomes:
            if outcome.success:
                counts[outcome.action.value] += 1
        return counts

    def count(self, action_type: ActionType) -> int:
        return self.counts[action_type.value]

    @property
    def failures(self) -> List[ActionOutcome]:
        return [outcome for outcome in self.outcomes if not outcome.success]

    @property
    def failed_names(self) -> List[str]:
        return [outcome.name for outcome in self.failures]

    @property
    def success(self) -> bool:
        return not self.failures

    def to_dict(self) -> Dict[str, Any]:
        return {
            "definitions_path": self.definitions_path,
            "indexes_path": self.indexes_path,
            "counts": self.counts,
            "failures": [outcome.to_dict() for outcome in self.failures],
            "outcomes": [outcome.to_dict() for outcome in self.outcomes],
        }
