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

import os
from functools import lru_cache
from typing import Any, Dict, List, Mapping

import dotenv
from pydantic import BaseModel, ConfigDict, Field, field_validator
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool

dotenv.load_dotenv(".env")

DEFAULT_OAK_INDEXES_PATH = "/oak:index"

PROP_ENSURE_DEFINITIONS_PATH = "ensure-definitions.path"
PROP_OAK_INDEXES_PATH = "oak-indexes.path"


def _split_csv(value: Any) -> List[str]:
    if isinstance(value, str):
        return [item.strip() for item in value.split(",") if item.strip()]
    return list(value or [])


class Settings(BaseModel):
    """Process-wide settings, read from the environment (and an optional .env file)"""

    database_url: str = "sqlite:///./ensure_index.db"
    redis_url: str = "redis://localhost:6379"
    celery_broker_url: str = ""
    celery_result_backend: str = ""
    scheduler_type: str = "local"
    max_workers: int = 4
    lock_expire_time: int = 3600
    managed_index_backends: List[str] = Field(default_factory=lambda: ["sqlite", "postgresql"])
    non_structural_properties: List[str] = Field(default_factory=lambda: ["info", "jcr:title", "jcr:description"])
    grouping_node_types: List[str] = Field(
        default_factory=lambda: ["nt:folder", "sling:Folder", "sling:OrderedFolder"]
    )

    @field_validator("managed_index_backends", "non_structural_properties", "grouping_node_types", mode="before")
    @classmethod
    def _parse_list(cls, value):
        return _split_csv(value)

    @field_validator("scheduler_type")
    @classmethod
    def _check_scheduler_type(cls, value: str) -> str:
        if value not in ("local", "celery"):
            raise ValueError(f"Unsupported scheduler type: {value}")
        return value

    @classmethod
    def from_env(cls, environ: Mapping[str, str] = None) -> "Settings":
        environ = os.environ if environ is None else environ
        env_map = {
            "DATABASE_URL": "database_url",
            "REDIS_URL": "redis_url",
            "CELERY_BROKER_URL": "celery_broker_url",
            "CELERY_RESULT_BACKEND": "celery_result_backend",
            "ENSURE_INDEX_SCHEDULER": "scheduler_type",
            "ENSURE_INDEX_MAX_WORKERS": "max_workers",
            "ENSURE_INDEX_LOCK_EXPIRE": "lock_expire_time",
            "ENSURE_INDEX_MANAGED_BACKENDS": "managed_index_backends",
            "ENSURE_INDEX_NON_STRUCTURAL_PROPERTIES": "non_structural_properties",
            "ENSURE_INDEX_GROUPING_TYPES": "grouping_node_types",
        }
        values: Dict[str, Any] = {}
        for env_name, field_name in env_map.items():
            if environ.get(env_name):
                values[field_name] = environ[env_name]
        result = cls(**values)
        # Celery falls back to redis when no dedicated broker is configured
        if not result.celery_broker_url:
            result.celery_broker_url = result.redis_url
        if not result.celery_result_backend:
            result.celery_result_backend = result.redis_url
        return result


class EnsureIndexConfig(BaseModel):
    """Trigger configuration for one (definitions, indexes) pair"""

    model_config = ConfigDict(populate_by_name=True)

    ensure_definitions_path: str = Field(default="", alias=PROP_ENSURE_DEFINITIONS_PATH)
    oak_indexes_path: str = Field(default=DEFAULT_OAK_INDEXES_PATH, alias=PROP_OAK_INDEXES_PATH)

    @field_validator("ensure_definitions_path", "oak_indexes_path", mode="before")
    @classmethod
    def _strip(cls, value):
        if value is None:
            return ""
        return str(value).strip()


settings = Settings.from_env()


def create_store_engine(database_url: str) -> Engine:
    """Create a sync engine; in-memory sqlite shares one connection across sessions"""
    if database_url in ("sqlite://", "sqlite:///:memory:"):
        return create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    if database_url.startswith("sqlite"):
        return create_engine(database_url, connect_args={"check_same_thread": False})
    return create_engine(database_url, pool_pre_ping=True)


@lru_cache(maxsize=1)
def get_sync_engine() -> Engine:
    return create_store_engine(settings.database_url)

