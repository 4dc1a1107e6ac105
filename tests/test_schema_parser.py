"""Tests for the schema_parser module."""

import pytest

from openapi2mcp.errors import DanglingReference, IncompatibleMerge, InvalidCombinator, MalformedInput
from openapi2mcp.schema_parser import (
    AnyNode,
    ArrayNode,
    ObjectNode,
    PrimitiveNode,
    RecursiveRef,
    UnionNode,
    describe_shape,
    recursion_targets,
    same_shape,
    walk,
)

_PET = "#/components/schemas/Pet"


def _component(resolver, name):
    return resolver.graph()[f"#/components/schemas/{name}"]


class TestPrimitives:

    def test_string_with_format(self, make_document, resolve_components):
        resolver = resolve_components(make_document(schemas={"When": {"type": "string", "format": "date-time"}}))
        node = _component(resolver, "When")
        assert isinstance(node, PrimitiveNode)
        assert (node.type, node.format) == ("string", "date-time")

    def test_enum_without_type(self, make_document, resolve_components):
        resolver = resolve_components(make_document(schemas={"Size": {"enum": [1, 2, 3]}}))
        node = _component(resolver, "Size")
        assert node.type == "integer"
        assert node.enum == (1, 2, 3)

    def test_const(self, make_document, resolve_components):
        resolver = resolve_components(make_document(schemas={"Kind": {"const": "cat"}}))
        node = _component(resolver, "Kind")
        assert node.type == "string"
        assert node.enum == ("cat",)

    def test_untyped_is_any(self, make_document, resolve_components):
        resolver = resolve_components(make_document(schemas={"Blob": {"description": "anything"}}))
        node = _component(resolver, "Blob")
        assert isinstance(node, AnyNode)
        assert node.description == "anything"

    def test_nullable_30(self, make_document, resolve_components):
        resolver = resolve_components(make_document(schemas={"N": {"type": "string", "nullable": True}}))
        assert _component(resolver, "N").nullable

    def test_type_list_with_null(self, make_document, resolve_components):
        resolver = resolve_components(make_document(schemas={"N": {"type": ["string", "null"]}}))
        node = _component(resolver, "N")
        assert isinstance(node, PrimitiveNode)
        assert node.type == "string"
        assert node.nullable

    def test_type_list_becomes_union(self, make_document, resolve_components):
        resolver = resolve_components(make_document(schemas={"N": {"type": ["string", "integer"]}}))
        node = _component(resolver, "N")
        assert isinstance(node, UnionNode)
        assert node.combinator == "type"
        assert [v.type for v in node.variants] == ["string", "integer"]

    def test_unknown_type(self, make_document, resolve_components):
        with pytest.raises(MalformedInput):
            resolve_components(make_document(schemas={"X": {"type": "file"}}))


class TestObjectsAndRefs:

    def test_object_fields_in_order(self, petstore, resolve_components):
        node = _component(resolve_components(petstore), "Error")
        assert isinstance(node, ObjectNode)
        assert node.field_names() == ["code", "message"]
        assert all(f.required for f in node.fields)

    def test_reference_sharing(self, make_document, resolve_components):
        doc = make_document(schemas={
            "Pet": {"type": "object", "properties": {"name": {"type": "string"}}},
            "Owner": {
                "type": "object",
                "properties": {
                    "first": {"$ref": _PET},
                    "second": {"$ref": _PET},
                },
            },
        })
        resolver = resolve_components(doc)
        owner = _component(resolver, "Owner")
        assert owner.get("first").node is owner.get("second").node
        assert owner.get("first").node is _component(resolver, "Pet")
        assert resolver.resolve({"$ref": _PET}, "#/x") is _component(resolver, "Pet")

    def test_additional_properties(self, make_document, resolve_components):
        doc = make_document(schemas={"Labels": {"type": "object", "additionalProperties": {"type": "string"}}})
        node = _component(resolve_components(doc), "Labels")
        assert node.fields == ()
        assert node.additional.type == "string"

    def test_dangling_reference(self, make_document, resolve_components):
        doc = make_document(schemas={"A": {"type": "object", "properties": {"b": {"$ref": "#/components/schemas/B"}}}})
        with pytest.raises(DanglingReference) as exc_info:
            resolve_components(doc)
        assert exc_info.value.pointer == "#/components/schemas/A/properties/b"

    def test_external_reference(self, make_document, resolve_components):
        doc = make_document(schemas={"A": {"$ref": "common.yaml#/Pet"}})
        with pytest.raises(DanglingReference):
            resolve_components(doc)

    def test_components_in_declaration_order(self, petstore, resolve_components):
        graph = resolve_components(petstore).graph()
        names = [c.rsplit("/", 1)[-1] for c in graph.components]
        assert names == ["NewPet", "Pet", "Error", "Category", "Cat", "Dog", "Animal"]

    def test_graph_is_read_only(self, petstore, resolve_components):
        graph = resolve_components(petstore).graph()
        with pytest.raises(TypeError):
            graph.nodes["#/x"] = None


class TestCycles:

    def test_direct_self_reference(self, petstore, resolve_components):
        category = _component(resolve_components(petstore), "Category")
        items = category.get("children").node.items
        assert isinstance(items, RecursiveRef)
        assert items.target == "#/components/schemas/Category"
        assert recursion_targets(category) == {"#/components/schemas/Category"}

    def test_two_hop_cycle(self, make_document, resolve_components):
        doc = make_document(schemas={
            "A": {"type": "object", "properties": {"b": {"$ref": "#/components/schemas/B"}}},
            "B": {"type": "object", "properties": {"a": {"$ref": "#/components/schemas/A"}}},
        })
        resolver = resolve_components(doc)
        a = _component(resolver, "A")
        b = _component(resolver, "B")
        assert a.get("b").node is b
        assert isinstance(b.get("a").node, RecursiveRef)
        assert b.get("a").node.target == "#/components/schemas/A"

    def test_walk_terminates_on_cycles(self, petstore, resolve_components):
        resolver = resolve_components(petstore)
        nodes = walk(*resolver.graph().nodes.values())
        assert len(nodes) == len({id(n) for n in nodes})

    def test_alias_loop_is_malformed(self, make_document, resolve_components):
        doc = make_document(schemas={
            "A": {"$ref": "#/components/schemas/B"},
            "B": {"$ref": "#/components/schemas/A"},
        })
        with pytest.raises(MalformedInput):
            resolve_components(doc)

    def test_self_alias_is_malformed(self, make_document, resolve_components):
        with pytest.raises(MalformedInput):
            resolve_components(make_document(schemas={"A": {"$ref": "#/components/schemas/A"}}))


class TestAllOf:

    def test_merge(self, petstore, resolve_components):
        pet = _component(resolve_components(petstore), "Pet")
        assert isinstance(pet, ObjectNode)
        assert pet.field_names() == ["name", "tag", "id"]
        assert pet.get("name").required
        assert pet.get("id").node.read_only

    def test_incompatible_merge(self, make_document, resolve_components):
        doc = make_document(schemas={
            "A": {"type": "object", "properties": {"id": {"type": "string"}}},
            "B": {"allOf": [
                {"$ref": "#/components/schemas/A"},
                {"type": "object", "properties": {"id": {"type": "integer"}}},
            ]},
        })
        with pytest.raises(IncompatibleMerge) as exc_info:
            resolve_components(doc)
        assert exc_info.value.field == "id"
        assert exc_info.value.shapes == ("string", "integer")

    def test_compatible_duplicate_field(self, make_document, resolve_components):
        doc = make_document(schemas={"B": {"allOf": [
            {"type": "object", "properties": {"id": {"type": "string"}}},
            {"type": "object", "required": ["id"], "properties": {"id": {"type": "string"}}},
        ]}})
        node = _component(resolve_components(doc), "B")
        assert node.field_names() == ["id"]
        assert node.get("id").required

    def test_required_only_member(self, make_document, resolve_components):
        doc = make_document(schemas={"B": {"allOf": [
            {"type": "object", "properties": {"id": {"type": "string"}}},
            {"required": ["id"]},
        ]}})
        assert _component(resolve_components(doc), "B").get("id").required

    def test_sibling_properties(self, make_document, resolve_components):
        doc = make_document(schemas={"B": {
            "allOf": [{"type": "object", "properties": {"id": {"type": "string"}}}],
            "properties": {"extra": {"type": "boolean"}},
            "required": ["extra"],
        }})
        node = _component(resolve_components(doc), "B")
        assert node.field_names() == ["id", "extra"]
        assert node.get("extra").required

    def test_single_member_is_alias(self, make_document, resolve_components):
        doc = make_document(schemas={
            "Pet": {"type": "object", "properties": {"name": {"type": "string"}}},
            "Wrapper": {"type": "object", "properties": {
                "pet": {"allOf": [{"$ref": _PET}], "description": "The pet"},
            }},
        })
        resolver = resolve_components(doc)
        assert _component(resolver, "Wrapper").get("pet").node is _component(resolver, "Pet")

    def test_primitive_member(self, make_document, resolve_components):
        doc = make_document(schemas={"B": {"allOf": [
            {"type": "object", "properties": {"id": {"type": "string"}}},
            {"type": "string"},
        ]}})
        with pytest.raises(InvalidCombinator):
            resolve_components(doc)

    def test_union_member(self, make_document, resolve_components):
        doc = make_document(schemas={"B": {"allOf": [
            {"type": "object", "properties": {"id": {"type": "string"}}},
            {"oneOf": [{"type": "object"}, {"type": "string"}]},
        ]}})
        with pytest.raises(InvalidCombinator):
            resolve_components(doc)


class TestUnions:

    def test_discriminator(self, petstore, resolve_components):
        animal = _component(resolve_components(petstore), "Animal")
        assert isinstance(animal, UnionNode)
        assert animal.combinator == "oneOf"
        assert [v.identity for v in animal.variants] == [
            "#/components/schemas/Cat",
            "#/components/schemas/Dog",
        ]
        assert animal.discriminator.property_name == "petType"
        assert animal.discriminator.mapping == (
            ("cat", "#/components/schemas/Cat"),
            ("dog", "#/components/schemas/Dog"),
        )
        assert animal.discriminator.value_for("#/components/schemas/Dog") == "dog"

    def test_null_variant_sets_nullable(self, make_document, resolve_components):
        doc = make_document(schemas={"U": {"anyOf": [{"type": "string"}, {"type": "null"}]}})
        node = _component(resolve_components(doc), "U")
        assert node.nullable
        assert len(node.variants) == 1
        assert node.combinator == "anyOf"

    def test_empty_one_of(self, make_document, resolve_components):
        with pytest.raises(InvalidCombinator):
            resolve_components(make_document(schemas={"U": {"oneOf": []}}))


class TestShapes:

    def test_same_shape(self, make_document, resolve_components):
        resolver = resolve_components(make_document())
        a = resolver.resolve({"type": "array", "items": {"type": "string"}}, "#/a")
        b = resolver.resolve({"type": "array", "items": {"type": "string"}}, "#/b")
        c = resolver.resolve({"type": "array", "items": {"type": "integer"}}, "#/c")
        assert same_shape(a, b)
        assert not same_shape(a, c)

    def test_describe_shape(self, petstore, resolve_components):
        resolver = resolve_components(petstore)
        assert describe_shape(_component(resolver, "Pet")) == "Pet"
        assert describe_shape(resolver.resolve({"type": "integer", "format": "int64"}, "#/x")) == "integer(int64)"
        assert describe_shape(ArrayNode(identity="#/y", items=AnyNode(identity="#/y/items"))) == "array<any>"
