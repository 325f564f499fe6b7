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
from typing import Any, Dict, List

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from ensure_index.activation import resolve_paths
from ensure_index.config import DEFAULT_OAK_INDEXES_PATH, EnsureIndexConfig
from ensure_index.exceptions import ConfigurationError, DefinitionsNotFoundError
from ensure_index.service.ensure_index_service import EnsureIndexService, get_ensure_index_service

logger = logging.getLogger(__name__)

router = APIRouter()


class ActivationResponse(BaseModel):
    result: str
    definitions_path: str
    indexes_path: str


def get_service() -> EnsureIndexService:
    return get_ensure_index_service()


@router.post("/activations", status_code=202)
def activate_view(config: EnsureIndexConfig, service: EnsureIndexService = Depends(get_service)) -> ActivationResponse:
    try:
        definitions_path, indexes_path = resolve_paths(config)
        result = service.activate(config)
    except ConfigurationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return ActivationResponse(result=result.value, definitions_path=definitions_path, indexes_path=indexes_path)


@router.get("/plan")
def plan_view(
    definitions_path: str,
    indexes_path: str = DEFAULT_OAK_INDEXES_PATH,
    service: EnsureIndexService = Depends(get_service),
) -> Dict[str, Any]:
    try:
        plan = service.plan(definitions_path, indexes_path)
    except DefinitionsNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return plan.to_dict()


@router.get("/status")
def status_view(
    indexes_path: str = DEFAULT_OAK_INDEXES_PATH,
    service: EnsureIndexService = Depends(get_service),
) -> List[Dict[str, Any]]:
    try:
        return service.index_status(indexes_path)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
