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
from typing import Iterable, Optional

from sqlalchemy.engine import Engine

from ensure_index.config import settings

logger = logging.getLogger(__name__)


class CapabilityHelper:
    """Decides whether the configured store backend may host managed indexes"""

    def __init__(self, engine: Engine, managed_backends: Optional[Iterable[str]] = None):
        self.engine = engine
        if managed_backends is None:
            managed_backends = settings.managed_index_backends
        self.managed_backends = {backend.lower() for backend in managed_backends}

    def supports_managed_indexes(self) -> bool:
        backend = self.engine.dialect.name.lower()
        supported = backend in self.managed_backends
        if not supported:
            logger.debug(f"Store backend {backend} is not one of {sorted(self.managed_backends)}")
        return supported
