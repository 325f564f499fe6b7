import pytest

from ensure_index.checksum import ChecksumGenerator
from ensure_index.exceptions import NodeNotFoundError
from ensure_index.store.models import TreeNode


def _tree(data, name="fooIndex"):
    return TreeNode.from_dict(name, f"/defs/{name}", data)


class TestChecksumGenerator:
    def test_property_order_does_not_matter(self):
        generator = ChecksumGenerator()
        first = _tree({"type": "property", "propertyNames": ["jcr:title"]})
        second = TreeNode(name="fooIndex", path="/x", properties={"propertyNames": ["jcr:title"], "type": "property"})
        assert generator.checksum_tree(first) == generator.checksum_tree(second)

    def test_list_value_order_matters(self):
        generator = ChecksumGenerator()
        first = _tree({"propertyNames": ["jcr:title", "jcr:description"]})
        second = _tree({"propertyNames": ["jcr:description", "jcr:title"]})
        assert generator.checksum_tree(first) != generator.checksum_tree(second)

    def test_child_order_matters(self):
        generator = ChecksumGenerator()
        first = _tree({"rules": {"a": {"n": 1}, "b": {"n": 2}}})
        second = _tree({"rules": {"b": {"n": 2}, "a": {"n": 1}}})
        assert generator.checksum_tree(first) != generator.checksum_tree(second)

    def test_root_name_is_not_part_of_the_digest(self):
        generator = ChecksumGenerator()
        data = {"type": "property"}
        assert generator.checksum_tree(_tree(data, "a")) == generator.checksum_tree(_tree(data, "b"))

    def test_excluded_properties_are_ignored(self):
        generator = ChecksumGenerator()
        plain = _tree({"type": "property"})
        stamped = _tree({"type": "property", "jcr:created": "2025-01-01T00:00:00Z"})
        assert generator.checksum_tree(plain) == generator.checksum_tree(stamped)

    def test_custom_exclusions(self):
        generator = ChecksumGenerator(excluded_properties=["info"])
        assert generator.checksum_tree(_tree({"type": "p", "info": "x"})) == generator.checksum_tree(
            _tree({"type": "p"})
        )

    def test_checksum_by_path_matches_snapshot(self, store, seed):
        seed("/defs", {"fooIndex": {"type": "property", "propertyNames": ["jcr:title"]}})
        generator = ChecksumGenerator(store)

        expected = generator.checksum_tree(_tree({"type": "property", "propertyNames": ["jcr:title"]}))
        assert generator.checksum("/defs/fooIndex") == expected

    def test_checksum_of_missing_path_raises(self, store):
        with pytest.raises(NodeNotFoundError):
            ChecksumGenerator(store).checksum("/missing")

    def test_checksum_without_store_raises(self):
        with pytest.raises(ValueError):
            ChecksumGenerator().checksum("/defs")
