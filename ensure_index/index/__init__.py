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

"""
Declarative index management

Index definitions kept under one path of the content tree describe the
desired state; the live indexes under another path are converged to it.

Key components:
- IndexPlanner: matches definitions to live indexes and decides an action per index
- EnsureIndexReconciler: plans a run from one consistent read and applies it
- ChecksumGenerator: fingerprints definitions so unchanged indexes are left alone
"""

from ensure_index.index.models import (
    Action,
    ActionOutcome,
    ActionType,
    IndexDefinition,
    LiveIndexEntry,
    ReconciliationPlan,
    ReconciliationReport,
)
from ensure_index.index.planner import IndexPlanner
from ensure_index.index.reconciler import EnsureIndexReconciler

__all__ = [
    "Action",
    "ActionOutcome",
    "ActionType",
    "EnsureIndexReconciler",
    "IndexDefinition",
    "IndexPlanner",
    "LiveIndexEntry",
    "ReconciliationPlan",
    "ReconciliationReport",
]
