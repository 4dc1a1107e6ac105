"""Tests for the naming module."""

import pytest

from openapi2mcp.errors import ToolNameTooLong
from openapi2mcp.naming import (
    LengthPolicy,
    NameRegistry,
    allocate_names,
    canonical_name,
    sanitize_identifier,
    sanitize_snake,
    to_pascal_case,
)
from openapi2mcp.operations import Operation


def _op(method, path, operation_id=None):
    return Operation(path=path, method=method, operation_id=operation_id)


class TestCanonicalName:
    """Tool names from method + path or operationId."""

    def test_ping(self):
        assert canonical_name(_op("get", "/ping")) == "get_ping"

    def test_path_parameter(self):
        assert canonical_name(_op("get", "/items/{id}")) == "get_items_id"

    def test_separators_collapse(self):
        assert canonical_name(_op("post", "/v1/user-profiles//{user.id}/")) == "post_v1_user_profiles_user_id"

    def test_case_preserved(self):
        assert canonical_name(_op("get", "/pet/findByStatus")) == "get_pet_findByStatus"

    def test_operation_id_preferred(self):
        assert canonical_name(_op("get", "/pets", "listPets")) == "listPets"

    def test_operation_id_sanitized(self):
        assert canonical_name(_op("get", "/x", "pets.list-all")) == "pets_list_all"

    def test_leading_digit(self):
        assert canonical_name(_op("get", "/x", "2fa.verify")) == "op_2fa_verify"

    def test_unusable_operation_id_falls_back(self):
        assert canonical_name(_op("get", "/ping", "---")) == "get_ping"

    def test_root_path(self):
        assert canonical_name(_op("get", "/")) == "get"

    def test_valid_identifier(self):
        name = canonical_name(_op("get", "/files/{base64 Name}/ä"))
        assert name.isidentifier()


class TestIdentifiers:

    def test_sanitize_identifier(self):
        assert sanitize_identifier("X-Request-Id") == "X_Request_Id"

    def test_sanitize_snake(self):
        assert sanitize_snake("petType") == "pet_type"
        assert sanitize_snake("X-Request-ID") == "x_request_id"

    def test_pascal_case(self):
        assert to_pascal_case("get_ping") == "GetPing"
        assert to_pascal_case("petStore-item") == "PetStoreItem"


class TestAllocateNames:

    def test_unique_in_order(self):
        ops = [_op("get", "/a"), _op("get", "/a/"), _op("get", "/a//")]
        allocations, registry = allocate_names(ops)
        assert [a.name for a in allocations] == ["get_a", "get_a_2", "get_a_3"]
        assert len(registry) == 3

    def test_truncate_and_dedup(self):
        ops = [
            _op("get", "/one", "get_item_by_id_extended_v2"),
            _op("get", "/two", "get_item_by_id_extended_v2"),
        ]
        allocations, _ = allocate_names(ops, max_length=20, policy=LengthPolicy.TRUNCATE)
        names = [a.name for a in allocations]
        assert names == ["get_item_by_id_exten", "get_item_by_id_ext_2"]
        assert all(len(n) <= 20 for n in names)

    def test_error_policy(self):
        op = _op("get", "/one", "get_item_by_id_extended_v2")
        with pytest.raises(ToolNameTooLong) as exc_info:
            allocate_names([op], max_length=20)
        assert exc_info.value.operation == "GET /one"
        assert exc_info.value.max_length == 20

    def test_skip_policy(self, caplog):
        ops = [_op("get", "/a"), _op("get", "/one", "get_item_by_id_extended_v2")]
        with caplog.at_level("WARNING"):
            allocations, _ = allocate_names(ops, max_length=20, policy="skip")
        assert [a.name for a in allocations] == ["get_a"]
        assert "GET /one" in caplog.text

    def test_registry_threads_through(self):
        first, registry = allocate_names([_op("get", "/a")])
        second, registry = allocate_names([_op("get", "/a")], registry=registry)
        assert second[0].name == "get_a_2"
        assert "get_a" in registry and "get_a_2" in registry

    def test_registry_is_immutable(self):
        registry = NameRegistry()
        grown = registry.add("x")
        assert "x" not in registry
        assert "x" in grown

    def test_no_room_for_suffix(self):
        ops = [_op("get", "/x"), _op("get", "/y")]
        with pytest.raises(ToolNameTooLong) as exc_info:
            allocate_names(ops, max_length=1, policy=LengthPolicy.TRUNCATE)
        assert exc_info.value.operation == "GET /y"
        assert exc_info.value.max_length == 1

    def test_suffix_fits_exactly(self):
        ops = [_op("get", "/x"), _op("get", "/y")]
        allocations, _ = allocate_names(ops, max_length=3, policy=LengthPolicy.TRUNCATE)
        assert [a.name for a in allocations] == ["get", "g_2"]

    def test_names_unique_and_bounded(self):
        ops = [_op("get", f"/resource/{i % 3}/sub") for i in range(30)]
        allocations, _ = allocate_names(ops, max_length=16, policy=LengthPolicy.TRUNCATE)
        names = [a.name for a in allocations]
        assert len(set(names)) == len(names)
        assert all(len(n) <= 16 for n in names)
