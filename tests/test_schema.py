"""Tests for schema dereferencing, example lookup and synthesis."""

from accord.mock.schema import (
    MISSING,
    SAMPLE_UUID,
    dereference,
    media_example,
    resolve_ref,
    synthesize,
    validate_instance,
)

DOCUMENT = {
    "components": {
        "schemas": {
            "Pet": {
                "type": "object",
                "required": ["name"],
                "properties": {
                    "id": {"type": "string", "format": "uuid"},
                    "name": {"type": "string"},
                    "age": {"type": "integer", "minimum": 1},
                    "tag": {"type": "string", "nullable": True},
                },
            },
            "Node": {
                "type": "object",
                "properties": {"child": {"$ref": "#/components/schemas/Node"}},
            },
        },
        "examples": {"Rex": {"value": {"name": "Rex"}}},
    }
}


def test_resolve_ref():
    assert resolve_ref(DOCUMENT, "#/components/schemas/Pet")["type"] == "object"


def test_dereference_inlines_refs_and_nullable():
    schema = dereference({"$ref": "#/components/schemas/Pet"}, DOCUMENT)
    assert schema["properties"]["tag"]["type"] == ["string", "null"]


def test_dereference_cuts_recursion():
    schema = dereference({"$ref": "#/components/schemas/Node"}, DOCUMENT)
    assert isinstance(schema, dict)


def test_unresolvable_ref_is_empty_schema():
    assert dereference({"$ref": "#/components/schemas/Missing"}, DOCUMENT) == {}


class TestMediaExample:
    def test_example_wins(self):
        assert media_example({"example": {"a": 1}, "schema": {"example": {"b": 2}}}, DOCUMENT) == {"a": 1}

    def test_first_of_examples(self):
        media = {"examples": {"first": {"value": [1]}, "second": {"value": [2]}}}
        assert media_example(media, DOCUMENT) == [1]

    def test_examples_ref(self):
        media = {"examples": {"rex": {"$ref": "#/components/examples/Rex"}}}
        assert media_example(media, DOCUMENT) == {"name": "Rex"}

    def test_schema_example(self):
        assert media_example({"schema": {"type": "string", "example": "hi"}}, DOCUMENT) == "hi"

    def test_missing(self):
        assert media_example({"schema": {"type": "string"}}, DOCUMENT) is MISSING


class TestSynthesize:
    def test_object_from_ref(self):
        value = synthesize({"$ref": "#/components/schemas/Pet"}, DOCUMENT)
        assert value == {"id": SAMPLE_UUID, "name": "string", "age": 1, "tag": "string"}

    def test_array(self):
        assert synthesize({"type": "array", "items": {"type": "integer"}}) == [0]

    def test_enum_default_and_const(self):
        assert synthesize({"type": "string", "enum": ["b", "a"]}) == "b"
        assert synthesize({"type": "integer", "default": 7}) == 7
        assert synthesize({"const": "fixed"}) == "fixed"

    def test_all_of_merges_properties(self):
        schema = {
            "allOf": [
                {"$ref": "#/components/schemas/Pet"},
                {"type": "object", "properties": {"owner": {"type": "string", "format": "email"}}},
            ]
        }
        value = synthesize(schema, DOCUMENT)
        assert value["name"] == "string"
        assert value["owner"] == "user@example.com"

    def test_one_of_uses_first(self):
        assert synthesize({"oneOf": [{"type": "boolean"}, {"type": "string"}]}) is True

    def test_number_bounds(self):
        assert synthesize({"type": "integer", "exclusiveMinimum": 10}) == 11
        assert synthesize({"type": "number"}) == 0.0

    def test_untyped_schema_is_missing(self):
        assert synthesize({"description": "anything"}) is MISSING
        assert synthesize(None) is MISSING


class TestValidateInstance:
    def test_valid(self):
        assert validate_instance({"name": "Rex"}, {"$ref": "#/components/schemas/Pet"}, DOCUMENT) == []

    def test_violations_carry_location_and_path(self):
        violations = validate_instance(
            {"name": 3, "tag": None},
            {"$ref": "#/components/schemas/Pet"},
            DOCUMENT,
            location="response.body",
        )
        assert violations == ["response.body.name: 3 is not of type 'string'"]

    def test_missing_required_at_root(self):
        violations = validate_instance({}, {"$ref": "#/components/schemas/Pet"}, DOCUMENT)
        assert violations == ["body: 'name' is a required property"]

    def test_empty_schema_accepts_anything(self):
        assert validate_instance(object(), {}) == []
