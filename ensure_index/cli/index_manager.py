#!/usr/bin/env python3
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
CLI tool for managing ensured indexes

Usage:
    python -m ensure_index.cli.index_manager --help
    python -m ensure_index.cli.index_manager import definitions.yaml --path /apps/ensure/definitions
    python -m ensure_index.cli.index_manager plan --definitions /apps/ensure/definitions
    python -m ensure_index.cli.index_manager reconcile --definitions /apps/ensure/definitions --indexes /oak:index
    python -m ensure_index.cli.index_manager activate --definitions /apps/ensure/definitions
    python -m ensure_index.cli.index_manager status --indexes /oak:index
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

import yaml

from ensure_index.config import DEFAULT_OAK_INDEXES_PATH, PROP_ENSURE_DEFINITIONS_PATH, PROP_OAK_INDEXES_PATH
from ensure_index.exceptions import ConfigurationError, DefinitionsNotFoundError

# Setup logging
logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
logger = logging.getLogger(__name__)


def _service():
    from ensure_index.service.ensure_index_service import get_ensure_index_service

    return get_ensure_index_service()


def _print(data):
    print(json.dumps(data, indent=2, ensure_ascii=False))


def import_definitions(file: str, path: str, replace: bool = False):
    """Load a YAML or JSON document into the content tree"""
    content = Path(file).read_text(encoding="utf-8")
    data = json.loads(content) if file.endswith(".json") else yaml.safe_load(content)
    if not isinstance(data, dict):
        raise ValueError(f"{file} must contain a mapping at the top level")
    _service().import_tree(path, data, replace=replace)
    print(f"Imported {file} into {path}")


def show_plan(definitions_path: str, indexes_path: str):
    plan = _service().plan(definitions_path, indexes_path)
    _print(plan.to_dict())
    return plan


def run_reconciliation(definitions_path: str, indexes_path: str):
    logger.info("Starting manual reconciliation...")
    report = _service().reconcile(definitions_path, indexes_path)
    _print(report.to_dict())
    return report


def activate(definitions_path: str, indexes_path: str):
    """Trigger a run through the configured scheduler"""
    from ensure_index.activation import ActivationResult, resolve_paths
    from ensure_index.tasks.job import job_name
    from ensure_index.tasks.scheduler import LocalJobScheduler

    config = {PROP_ENSURE_DEFINITIONS_PATH: definitions_path, PROP_OAK_INDEXES_PATH: indexes_path}
    definitions_path, indexes_path = resolve_paths(config)
    service = _service()
    result = service.activate(config)
    print(f"Activation {result.value}")

    scheduler = service.scheduler
    if result == ActivationResult.SUBMITTED and isinstance(scheduler, LocalJobScheduler):
        # The local pool dies with this process, so always wait for it
        job_result = scheduler.wait(job_name(definitions_path, indexes_path))
        if job_result is not None:
            _print(job_result.to_dict())
    return result


def show_status(indexes_path: str):
    entries = _service().index_status(indexes_path)
    if not entries:
        print(f"No indexes found under {indexes_path}")
        return entries
    _print(entries)
    return entries


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Manage ensured index definitions")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    import_parser = subparsers.add_parser("import", help="Import a YAML/JSON tree into the store")
    import_parser.add_argument("file", help="YAML or JSON file")
    import_parser.add_argument("--path", required=True, help="Absolute path to import to")
    import_parser.add_argument("--replace", action="store_true", help="Replace an existing subtree")

    for command, help_text in (
        ("plan", "Show the actions a reconciliation would take"),
        ("reconcile", "Run reconciliation synchronously"),
        ("activate", "Trigger reconciliation through the scheduler"),
    ):
        sub = subparsers.add_parser(command, help=help_text)
        sub.add_argument("--definitions", required=True, help="Ensure definitions path")
        sub.add_argument("--indexes", default=DEFAULT_OAK_INDEXES_PATH, help="Live indexes path")

    status_parser = subparsers.add_parser("status", help="Show live indexes and their bookkeeping")
    status_parser.add_argument("--indexes", default=DEFAULT_OAK_INDEXES_PATH, help="Live indexes path")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    try:
        if args.command == "import":
            import_definitions(args.file, args.path, replace=args.replace)
        elif args.command == "plan":
            show_plan(args.definitions, args.indexes)
        elif args.command == "reconcile":
            report = run_reconciliation(args.definitions, args.indexes)
            return 0 if report.success else 2
        elif args.command == "activate":
            activate(args.definitions, args.indexes)
        elif args.command == "status":
            show_status(args.indexes)
    except (ConfigurationError, DefinitionsNotFoundError, ValueError) as e:
        logger.error(str(e))
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
