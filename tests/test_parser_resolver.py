"""Tests for parsing JSON into nodes and resolving references."""

import io
import sys

import pytest

from jsonio import ErrorKind, JsonIoError, JsonObject, parse, to_objects
from jsonio.parser import NodeParser
from jsonio.resolver import ReferenceResolver


def parse_nodes(text):
    return NodeParser().parse(text)


# ============================================================================
# Parsing
# ============================================================================


class TestParser:
    def test_scalars_and_arrays_are_plain(self):
        assert parse_nodes("[1, 2.5, true, null, \"x\"]") == [1, 2.5, True, None, "x"]

    def test_objects_become_nodes(self):
        node = parse_nodes('{"a": {"b": 1}}')
        assert isinstance(node, JsonObject)
        assert isinstance(node["a"], JsonObject)

    def test_meta_keys_lifted(self):
        node = parse_nodes('{"@id": 1, "@type": "test.Thing", "name": "a"}')
        assert node.id == 1
        assert node.type == "test.Thing"
        assert dict(node) == {"name": "a"}

    def test_reference_lifted(self):
        node = parse_nodes('{"@ref": 3}')
        assert node.is_reference()
        assert node.ref == 3
        assert dict(node) == {}

    def test_keys_and_items_kept(self):
        node = parse_nodes('{"@keys": [1, 2], "@items": ["a", "b"]}')
        assert node.is_map()
        assert node["@keys"] == [1, 2]
        assert node["@items"] == ["a", "b"]

    def test_short_meta_keys(self):
        node = parse_nodes('{"@i": 1, "@t": "set", "@e": [1]}')
        assert node.id == 1
        assert node.type == "set"
        assert node.is_array()
        assert node["@items"] == [1]

    def test_bytes_input(self):
        assert parse_nodes(b'{"a": 1}') == {"a": 1}

    def test_stream_input(self):
        assert parse_nodes(io.StringIO('{"a": 1}')) == {"a": 1}

    @pytest.mark.parametrize("text", ['{"a": 1', "[1, 2,]", "", "{'a': 1}"])
    def test_malformed(self, text):
        with pytest.raises(JsonIoError) as exc_info:
            parse_nodes(text)
        assert exc_info.value.kind is ErrorKind.MALFORMED_INPUT

    def test_non_string_type_kept(self):
        node = parse_nodes('{"@type": 5, "a": 1}')
        assert node.type == 5
        assert dict(node) == {"a": 1}

    def test_deeply_nested_document(self):
        depth = sys.getrecursionlimit() * 3
        with pytest.raises(JsonIoError) as exc_info:
            to_objects("[" * depth + "]" * depth)
        assert exc_info.value.kind is ErrorKind.MALFORMED_INPUT

    def test_unsupported_source(self):
        with pytest.raises(JsonIoError) as exc_info:
            parse_nodes(42)
        assert exc_info.value.kind is ErrorKind.MALFORMED_INPUT

    def test_json_io_error_is_value_error(self):
        with pytest.raises(ValueError):
            parse_nodes("{")


# ============================================================================
# Reference Resolution
# ============================================================================


class TestResolver:
    def test_backward_reference(self):
        root = parse('[{"@id": 1, "a": 1}, {"@ref": 1}]')
        assert root[0] is root[1]

    def test_forward_reference(self):
        root = parse('[{"@ref": 1}, {"@id": 1, "a": 1}]')
        assert root[0] is root[1]
        assert root[0] == {"a": 1}

    def test_cycle(self):
        root = parse('{"@id": 1, "self": {"@ref": 1}}')
        assert root["self"] is root

    def test_reference_inside_keys(self):
        root = parse('{"@keys": [{"@ref": 1}], "@items": [{"@id": 1, "k": 1}]}')
        assert root["@keys"][0] is root["@items"][0]

    def test_reference_target_set(self):
        tree = parse_nodes('[{"@ref": 1}, {"@id": 1}]')
        ref_node = tree[0]
        ReferenceResolver().resolve(tree)
        assert ref_node.target is tree[1]

    def test_table(self):
        tree = parse_nodes('[{"@id": 1}, {"@id": 2, "x": {"@ref": 1}}]')
        resolver = ReferenceResolver()
        resolver.resolve(tree)
        assert set(resolver.table) == {1, 2}
        assert resolver.table[2] is tree[1]

    def test_digit_string_ids(self):
        root = parse('[{"@id": "7", "a": 1}, {"@ref": "7"}]')
        assert root[0] is root[1]
        assert root[0].id == 7

    def test_unresolved_reference(self):
        with pytest.raises(JsonIoError) as exc_info:
            parse('[{"@id": 1}, {"@ref": 2}]')
        assert exc_info.value.kind is ErrorKind.UNRESOLVED_REFERENCE

    def test_duplicate_id(self):
        with pytest.raises(JsonIoError) as exc_info:
            parse('[{"@id": 1}, {"@id": 1}]')
        assert exc_info.value.kind is ErrorKind.MALFORMED_INPUT

    def test_non_integer_id(self):
        with pytest.raises(JsonIoError) as exc_info:
            parse('[{"@id": "abc"}]')
        assert exc_info.value.kind is ErrorKind.MALFORMED_INPUT

    def test_root_reference(self):
        with pytest.raises(JsonIoError) as exc_info:
            parse('{"@ref": 1}')
        assert exc_info.value.kind is ErrorKind.UNRESOLVED_REFERENCE

    def test_wide_document(self):
        items = ", ".join('{"@ref": 1}' for _ in range(5000))
        root = parse(f'[{{"@id": 1, "a": 1}}, {items}]')
        assert len(root) == 5001
        assert all(item is root[0] for item in root)
