"""
Unit tests for activation: configuration validation, the capability gate and
handing the run to a scheduler.
"""

from unittest.mock import MagicMock

import pytest

from ensure_index.activation import ActivationResult, EnsureIndexActivator, resolve_paths
from ensure_index.config import EnsureIndexConfig
from ensure_index.exceptions import ConfigurationError
from ensure_index.tasks.job import EnsureIndexJob
from ensure_index.tasks.scheduler import LocalJobScheduler
from tests.unit_test.conftest import DEFINITIONS_PATH, INDEXES_PATH


def make_activator(submitted=True, supported=True):
    scheduler = MagicMock()
    scheduler.submit.return_value = submitted
    return EnsureIndexActivator(scheduler, MagicMock(), lambda: supported), scheduler


class TestResolvePaths:
    def test_property_names(self):
        config = {"ensure-definitions.path": DEFINITIONS_PATH, "oak-indexes.path": "/content/oak:index"}
        assert resolve_paths(config) == (DEFINITIONS_PATH, "/content/oak:index")

    def test_field_names(self):
        config = EnsureIndexConfig(ensure_definitions_path=DEFINITIONS_PATH)
        assert resolve_paths(config) == (DEFINITIONS_PATH, INDEXES_PATH)

    @pytest.mark.parametrize("indexes_path", [None, "", "   "])
    def test_blank_indexes_path_defaults(self, indexes_path):
        config = {"ensure-definitions.path": DEFINITIONS_PATH, "oak-indexes.path": indexes_path}
        assert resolve_paths(config)[1] == "/oak:index"

    @pytest.mark.parametrize("definitions_path", [None, "", "  "])
    def test_blank_definitions_path_rejected(self, definitions_path):
        with pytest.raises(ConfigurationError, match="ensure-definitions.path"):
            resolve_paths({"ensure-definitions.path": definitions_path})

    def test_missing_definitions_path_rejected(self):
        with pytest.raises(ConfigurationError):
            resolve_paths({})

    def test_relative_paths_rejected(self):
        with pytest.raises(ConfigurationError, match="absolute"):
            resolve_paths({"ensure-definitions.path": "apps/definitions"})
        with pytest.raises(ConfigurationError, match="oak-indexes.path"):
            resolve_paths({"ensure-definitions.path": DEFINITIONS_PATH, "oak-indexes.path": "oak:index"})

    def test_paths_are_normalized(self):
        config = {"ensure-definitions.path": " /apps/ensure//definitions/ "}
        assert resolve_paths(config)[0] == DEFINITIONS_PATH


class TestEnsureIndexActivator:
    def test_submits_named_job(self):
        activator, scheduler = make_activator()

        result = activator.activate({"ensure-definitions.path": DEFINITIONS_PATH})

        assert result == ActivationResult.SUBMITTED
        job = scheduler.submit.call_args.args[0]
        assert isinstance(job, EnsureIndexJob)
        assert (job.definitions_path, job.indexes_path) == (DEFINITIONS_PATH, INDEXES_PATH)
        assert scheduler.submit.call_args.kwargs == {"name": job.name, "allow_concurrent": False}

    def test_coalesced_when_already_running(self):
        activator, _ = make_activator(submitted=False)
        assert activator.activate({"ensure-definitions.path": DEFINITIONS_PATH}) == ActivationResult.COALESCED

    def test_unsupported_backend_schedules_nothing(self):
        activator, scheduler = make_activator(supported=False)

        result = activator.activate({"ensure-definitions.path": DEFINITIONS_PATH})

        assert result == ActivationResult.CAPABILITY_UNSUPPORTED
        scheduler.submit.assert_not_called()

    def test_invalid_configuration_schedules_nothing(self):
        activator, scheduler = make_activator()
        with pytest.raises(ConfigurationError):
            activator.activate({"ensure-definitions.path": ""})
        scheduler.submit.assert_not_called()

    def test_activation_runs_reconciliation(self, service, seed):
        seed(DEFINITIONS_PATH, {"fooIndex": {"type": "property"}})
        scheduler = LocalJobScheduler(max_workers=1)
        try:
            activator = EnsureIndexActivator(scheduler, service.build_reconciler, lambda: True)
            assert activator.activate({"ensure-definitions.path": DEFINITIONS_PATH}) == ActivationResult.SUBMITTED

            result = scheduler.wait(f"Ensure index {INDEXES_PATH} => {DEFINITIONS_PATH}", timeout=5)
        finally:
            scheduler.shutdown()

        assert result.success is True
        assert service.store.exists(f"{INDEXES_PATH}/fooIndex")
