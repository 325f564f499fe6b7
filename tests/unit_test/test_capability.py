from ensure_index.capability import CapabilityHelper


class TestCapabilityHelper:
    def test_sqlite_supported_by_default(self, engine):
        assert CapabilityHelper(engine).supports_managed_indexes() is True

    def test_backend_outside_allow_list(self, engine):
        assert CapabilityHelper(engine, managed_backends=["postgresql"]).supports_managed_indexes() is False

    def test_allow_list_is_case_insensitive(self, engine):
        assert CapabilityHelper(engine, managed_backends=["SQLite"]).supports_managed_indexes() is True
