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

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from typing import Any, Dict, Iterable, List, Optional, Sequence

from ensure_index.store.models import TreeNode, join_path, normalize_path, parent_of

REINDEX_FLAG = "reindex"


class StoreMutator(ABC):
    """Write access to the content tree inside one transaction"""

    @abstractmethod
    def exists(self, path: str) -> bool:
        pass

    @abstractmethod
    def create_node(self, path: str, properties: Optional[Dict[str, Any]] = None) -> None:
        """
        Create a single node. The parent must exist.

        Raises:
            NodeExistsError: the path is already taken
            NodeNotFoundError: the parent does not exist
        """
        pass

    @abstractmethod
    def set_properties(self, path: str, properties: Dict[str, Any], remove: Iterable[str] = ()) -> None:
        """Merge properties into a node and drop the names listed in remove"""
        pass

    @abstractmethod
    def delete_node(self, path: str) -> None:
        """Delete a node and everything below it"""
        pass

    def ensure_node(self, path: str, properties: Optional[Dict[str, Any]] = None) -> None:
        """Create the node and any missing ancestors; existing nodes are left alone"""
        path = normalize_path(path)
        if path == "/" or self.exists(path):
            return
        self.ensure_node(parent_of(path))
        self.create_node(path, properties)

    def create_tree(self, path: str, node: TreeNode, extra_properties: Optional[Dict[str, Any]] = None) -> None:
        """Copy a snapshot subtree to path, in child order"""
        properties = dict(node.properties)
        if extra_properties:
            properties.update(extra_properties)
        self.create_node(path, properties)
        for child in node.children:
            self.create_tree(join_path(path, child.name), child)

    def mark_for_reindex(self, path: str) -> None:
        self.set_properties(path, {REINDEX_FLAG: True})


class ContentStore(ABC):
    """Read access to the content tree plus scoped write transactions"""

    @abstractmethod
    def exists(self, path: str) -> bool:
        pass

    @abstractmethod
    def read_tree(self, path: str) -> Optional[TreeNode]:
        """Snapshot of the subtree at path, or None when the path does not resolve"""
        pass

    def read_trees(self, paths: Sequence[str]) -> List[Optional[TreeNode]]:
        return [self.read_tree(path) for path in paths]

    @abstractmethod
    def transaction(self) -> AbstractContextManager:
        """
        Context manager yielding a StoreMutator. Writes made through it become
        visible together when the block exits cleanly and are discarded otherwise.
        """
        pass
