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


class EnsureIndexError(Exception):
    """Base class for all ensure-index errors"""


class ConfigurationError(EnsureIndexError):
    """A required trigger configuration value is blank or malformed"""


class DefinitionsNotFoundError(EnsureIndexError):
    """The desired definitions root does not exist in the store"""

    def __init__(self, path: str):
        super().__init__(f"Ensure definitions path [ {path} ] does not exist")
        self.path = path


class InvalidDefinitionError(EnsureIndexError):
    """An index definition cannot be applied as written"""


class ActionApplyError(EnsureIndexError):
    """A single planned action failed to apply"""

    def __init__(self, name: str, action: str, cause: Exception):
        super().__init__(f"Failed to apply {action} to index {name}: {cause}")
        self.name = name
        self.action = action
        self.cause = cause


class StoreError(EnsureIndexError):
    pass


class NodeNotFoundError(StoreError):
    def __init__(self, path: str):
        super().__init__(f"Node {path} does not exist")
        self.path = path


class NodeExistsError(StoreError):
    def __init__(self, path: str):
        super().__init__(f"Node {path} already exists")
        self.path = path
