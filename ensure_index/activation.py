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
from enum import Enum
from typing import Any, Callable, Mapping, Tuple, Union

from pydantic import ValidationError

from ensure_index.config import (
    DEFAULT_OAK_INDEXES_PATH,
    PROP_ENSURE_DEFINITIONS_PATH,
    PROP_OAK_INDEXES_PATH,
    EnsureIndexConfig,
)
from ensure_index.exceptions import ConfigurationError
from ensure_index.index.reconciler import EnsureIndexReconciler
from ensure_index.store.models import normalize_path
from ensure_index.tasks.job import EnsureIndexJob
from ensure_index.tasks.scheduler import JobScheduler

logger = logging.getLogger(__name__)


class ActivationResult(str, Enum):
    SUBMITTED = "submitted"
    COALESCED = "coalesced"
    CAPABILITY_UNSUPPORTED = "capability_unsupported"


def resolve_paths(config: Union[EnsureIndexConfig, Mapping[str, Any]]) -> Tuple[str, str]:
    """
    Validate trigger configuration and return (definitions path, indexes path)

    Raises:
        ConfigurationError: the definitions path is blank or a path is not absolute
    """
    if not isinstance(config, EnsureIndexConfig):
        try:
            config = EnsureIndexConfig.model_validate(dict(config))
        except ValidationError as e:
            raise ConfigurationError(f"Invalid ensure index configuration: {e}") from e

    definitions_path = config.ensure_definitions_path
    indexes_path = config.oak_indexes_path or DEFAULT_OAK_INDEXES_PATH

    if not definitions_path:
        raise ConfigurationError(f"Configuration property `{PROP_ENSURE_DEFINITIONS_PATH}` cannot be blank.")
    for prop, value in ((PROP_ENSURE_DEFINITIONS_PATH, definitions_path), (PROP_OAK_INDEXES_PATH, indexes_path)):
        if not value.startswith("/"):
            raise ConfigurationError(f"Configuration property `{prop}` must be an absolute path, got [ {value} ]")

    return normalize_path(definitions_path), normalize_path(indexes_path)


class EnsureIndexActivator:
    """
    Turns a configuration change into a background reconciliation run.

    Activation itself never blocks on the run: it validates, checks the
    capability predicate and hands an EnsureIndexJob to the scheduler.
    """

    def __init__(
        self,
        scheduler: JobScheduler,
        reconciler_factory: Callable[[], EnsureIndexReconciler],
        supports_managed_indexes: Callable[[], bool],
    ):
        self.scheduler = scheduler
        self.reconciler_factory = reconciler_factory
        self.supports_managed_indexes = supports_managed_indexes

    def activate(self, config: Union[EnsureIndexConfig, Mapping[str, Any]]) -> ActivationResult:
        definitions_path, indexes_path = resolve_paths(config)

        if not self.supports_managed_indexes():
            logger.info("Refusing to ensure indexes on a store backend without managed index support")
            return ActivationResult.CAPABILITY_UNSUPPORTED

        logger.info(f"Ensuring indexes [ {definitions_path} ~> {indexes_path} ]")
        job = EnsureIndexJob(self.reconciler_factory, definitions_path, indexes_path)
        if not self.scheduler.submit(job, name=job.name, allow_concurrent=False):
            return ActivationResult.COALESCED

        logger.info(f"Job [ {job.name} ] scheduled to update the indexes")
        return ActivationResult.SUBMITTED
