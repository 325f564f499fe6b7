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
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel, UniqueConstraint

ROOT_PATH = "/"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def normalize_path(path: str) -> str:
    """Collapse duplicate and trailing slashes; paths are always absolute"""
    if not path or not path.startswith("/"):
        raise ValueError(f"Path must be absolute: {path!r}")
    segments = [segment for segment in path.split("/") if segment]
    return "/" + "/".join(segments)


def parent_of(path: str) -> Optional[str]:
    path = normalize_path(path)
    if path == ROOT_PATH:
        return None
    parent = path.rsplit("/", 1)[0]
    return parent or ROOT_PATH


def name_of(path: str) -> str:
    return normalize_path(path).rsplit("/", 1)[-1]


def join_path(parent: str, name: str) -> str:
    parent = normalize_path(parent)
    if parent == ROOT_PATH:
        return "/" + name
    return f"{parent}/{name}"


class ContentNode(SQLModel, table=True):
    __tablename__ = "content_node"
    __table_args__ = (UniqueConstraint("path", name="uq_content_node_path"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    path: str = Field(max_length=2048, index=True)
    parent_path: str = Field(max_length=2048, index=True)
    name: str = Field(max_length=512)
    position: int = 0
    properties: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))
    gmt_created: datetime = Field(default_factory=utc_now)
    gmt_updated: datetime = Field(default_factory=utc_now)


@dataclass
class TreeNode:
    """Detached snapshot of a content subtree; children keep their stored order"""

    name: str
    path: str
    properties: Dict[str, Any] = field(default_factory=dict)
    children: List["TreeNode"] = field(default_factory=list)

    def child(self, name: str) -> Optional["TreeNode"]:
        for child in self.children:
            if child.name == name:
                return child
        return None

    def to_dict(self) -> Dict[str, Any]:
        """Nested mapping: properties inline, children as nested mappings in order"""
        result: Dict[str, Any] = copy.deepcopy(self.properties)
        for child in self.children:
            result[child.name] = child.to_dict()
        return result

    @classmethod
    def from_dict(cls, name: str, path: str, data: Dict[str, Any]) -> "TreeNode":
        """Build a snapshot from a nested mapping; nested mappings become child nodes"""
        properties: Dict[str, Any] = {}
        children: List[TreeNode] = []
        for key, value in data.items():
            if isinstance(value, dict):
                children.append(cls.from_dict(key, join_path(path, key), value))
            else:
                properties[key] = copy.deepcopy(value)
        return cls(name=name, path=path, properties=properties, children=children)
