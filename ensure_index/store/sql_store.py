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

import copy
import logging
from collections import defaultdict
from contextlib import contextmanager
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence

from sqlalchemy import func
from sqlalchemy import select as sa_select
from sqlalchemy.engine import Engine
from sqlmodel import Session, SQLModel, col, select

from ensure_index.exceptions import NodeExistsError, NodeNotFoundError, StoreError
from ensure_index.store.base import ContentStore, StoreMutator
from ensure_index.store.models import ROOT_PATH, ContentNode, TreeNode, name_of, normalize_path, parent_of, utc_now

logger = logging.getLogger(__name__)


def _descendants_query(path: str):
    if path == ROOT_PATH:
        return select(ContentNode)
    return select(ContentNode).where(col(ContentNode.path).startswith(path + "/", autoescape=True))


def _get_node(session: Session, path: str) -> Optional[ContentNode]:
    return session.exec(select(ContentNode).where(ContentNode.path == path)).first()


class SqlStoreMutator(StoreMutator):
    """StoreMutator bound to one SQLModel session; the caller owns the transaction"""

    def __init__(self, session: Session):
        self.session = session

    def exists(self, path: str) -> bool:
        path = normalize_path(path)
        return path == ROOT_PATH or _get_node(self.session, path) is not None

    def create_node(self, path: str, properties: Optional[Dict[str, Any]] = None) -> None:
        path = normalize_path(path)
        if path == ROOT_PATH or _get_node(self.session, path) is not None:
            raise NodeExistsError(path)
        parent = parent_of(path)
        if parent != ROOT_PATH and _get_node(self.session, parent) is None:
            raise NodeNotFoundError(parent)

        last_position = self.session.scalar(
            sa_select(func.max(ContentNode.position)).where(ContentNode.parent_path == parent)
        )
        node = ContentNode(
            path=path,
            parent_path=parent,
            name=name_of(path),
            position=0 if last_position is None else last_position + 1,
            properties=copy.deepcopy(properties or {}),
        )
        self.session.add(node)
        self.session.flush()
        logger.debug(f"Created node {path}")

    def set_properties(self, path: str, properties: Dict[str, Any], remove: Iterable[str] = ()) -> None:
        path = normalize_path(path)
        node = _get_node(self.session, path)
        if node is None:
            raise NodeNotFoundError(path)

        # Assign a fresh dict so the JSON column is flagged dirty
        merged = dict(node.properties or {})
        merged.update(copy.deepcopy(properties))
        for name in remove:
            merged.pop(name, None)
        node.properties = merged
        node.gmt_updated = utc_now()
        self.session.add(node)
        self.session.flush()

    def delete_node(self, path: str) -> None:
        path = normalize_path(path)
        if path == ROOT_PATH:
            raise StoreError("The root node cannot be deleted")
        node = _get_node(self.session, path)
        if node is None:
            raise NodeNotFoundError(path)

        for descendant in self.session.exec(_descendants_query(path)).all():
            self.session.delete(descendant)
        self.session.delete(node)
        self.session.flush()
        logger.debug(f"Deleted node {path}")


class SqlContentStore(ContentStore):
    """Content tree persisted as one row per node in the content_node table"""

    def __init__(self, engine: Engine):
        self.engine = engine

    def create_tables(self):
        SQLModel.metadata.create_all(self.engine)

    def exists(self, path: str) -> bool:
        path = normalize_path(path)
        if path == ROOT_PATH:
            return True
        with Session(self.engine) as session:
            return _get_node(session, path) is not None

    def read_tree(self, path: str) -> Optional[TreeNode]:
        with Session(self.engine) as session:
            return self._read_tree(session, normalize_path(path))

    def read_trees(self, paths: Sequence[str]) -> List[Optional[TreeNode]]:
        """Read several subtrees inside a single transaction"""
        with Session(self.engine) as session:
            with session.begin():
                return [self._read_tree(session, normalize_path(path)) for path in paths]

    @contextmanager
    def transaction(self) -> Iterator[SqlStoreMutator]:
        with Session(self.engine) as session:
            with session.begin():
                yield SqlStoreMutator(session)

    def _read_tree(self, session: Session, path: str) -> Optional[TreeNode]:
        if path == ROOT_PATH:
            root_properties: Dict[str, Any] = {}
        else:
            root = _get_node(session, path)
            if root is None:
                return None
            root_properties = root.properties or {}

        rows = session.exec(
            _descendants_query(path).order_by(ContentNode.parent_path, ContentNode.position, ContentNode.id)
        ).all()
        by_parent: Dict[str, List[ContentNode]] = defaultdict(list)
        for row in rows:
            by_parent[row.parent_path].append(row)

        def build(node_path: str, properties: Dict[str, Any]) -> TreeNode:
            return TreeNode(
                name=name_of(node_path) if node_path != ROOT_PATH else "",
                path=node_path,
                properties=copy.deepcopy(properties),
                children=[build(row.path, row.properties or {}) for row in by_parent.get(node_path, [])],
            )

        return build(path, root_properties)
