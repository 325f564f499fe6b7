from datetime import datetime, timezone

import pytest
from sqlmodel import SQLModel

from ensure_index.config import create_store_engine
from ensure_index.service.ensure_index_service import EnsureIndexService
from ensure_index.store.models import ContentNode  # noqa: F401  registers the table
from ensure_index.store.sql_store import SqlContentStore

DEFINITIONS_PATH = "/apps/ensure/definitions"
INDEXES_PATH = "/oak:index"

FIXED_NOW = datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def engine():
    engine = create_store_engine("sqlite://")
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def store(engine):
    return SqlContentStore(engine)


@pytest.fixture
def service(store):
    return EnsureIndexService(store)


@pytest.fixture
def clock():
    return lambda: FIXED_NOW


@pytest.fixture
def seed(service):
    """Write nested mappings into the store: seed(path, {...})"""

    def _seed(path, data, replace=False):
        service.import_tree(path, data, replace=replace)

    return _seed
