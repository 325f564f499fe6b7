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

import hashlib
import json
from typing import Any, Dict, Iterable, Optional

from ensure_index.exceptions import NodeNotFoundError
from ensure_index.store.base import ContentStore
from ensure_index.store.models import TreeNode

# Properties the repository maintains on its own; they never describe content
DEFAULT_EXCLUDED_PROPERTIES = frozenset(
    {
        "jcr:created",
        "jcr:createdBy",
        "jcr:lastModified",
        "jcr:lastModifiedBy",
        "jcr:uuid",
    }
)


class ChecksumGenerator:
    """
    Fingerprints content subtrees.

    Property order never matters; child order and the order of list values do,
    since index rule lists are evaluated in order.
    """

    def __init__(
        self,
        store: Optional[ContentStore] = None,
        excluded_properties: Iterable[str] = DEFAULT_EXCLUDED_PROPERTIES,
        algorithm: str = "sha256",
    ):
        self.store = store
        self.excluded_properties = frozenset(excluded_properties)
        self.algorithm = algorithm

    def checksum(self, path: str) -> str:
        if self.store is None:
            raise ValueError("ChecksumGenerator has no store to read from")
        tree = self.store.read_tree(path)
        if tree is None:
            raise NodeNotFoundError(path)
        return self.checksum_tree(tree)

    def checksum_tree(self, node: TreeNode) -> str:
        digest = hashlib.new(self.algorithm)
        payload = json.dumps(self._canonical(node), sort_keys=True, separators=(",", ":"), default=str)
        digest.update(payload.encode("utf-8"))
        return digest.hexdigest()

    def _canonical(self, node: TreeNode) -> Dict[str, Any]:
        properties = {
            name: value for name, value in node.properties.items() if name not in self.excluded_properties
        }
        # Children are a list of pairs so sort_keys cannot reorder them
        children = [[child.name, self._canonical(child)] for child in node.children]
        return {"properties": properties, "children": children}
