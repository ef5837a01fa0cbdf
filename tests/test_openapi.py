"""Tests for OpenAPI operation extraction, matching and validation."""

import pytest

from accord.mock.openapi import (
    base_paths,
    extract_operation_from_path,
    extract_operations,
    generate_operation_id,
    match_operation,
    match_path,
    response_schema,
    spec_response,
    validate_request,
)
from accord.mock.operations import ResponseSource
from accord.models import HTTPRequest

SWAGGER = {
    "swagger": "2.0",
    "basePath": "/api",
    "paths": {
        "/pets": {
            "get": {
                "operationId": "listPets",
                "responses": {"200": {"schema": {"type": "array", "items": {"type": "string"}}}},
            },
            "post": {
                "operationId": "createPet",
                "parameters": [
                    {
                        "name": "pet",
                        "in": "body",
                        "required": True,
                        "schema": {"type": "object", "required": ["name"]},
                    }
                ],
                "responses": {"201": {"examples": {"application/json": {"name": "Rex"}}}},
            },
        }
    },
}


def ops_by_id(spec):
    return {op.id: op for op in extract_operations(spec)}


class TestExtractOperations:
    def test_ids_and_fallback(self, user_spec):
        ids = [op.id for op in extract_operations(user_spec)]
        assert ids == [
            "listUsers",
            "createUser",
            "getUser",
            "DELETE./users/{id}",
            "getCurrentUser",
            "getReports",
        ]

    def test_path_level_parameters_are_merged(self, user_spec):
        op = ops_by_id(user_spec)["getUser"]
        assert op.method == "GET"
        assert op.path == "/users/{id}"
        assert [p["name"] for p in op.definition["parameters"]] == ["id"]

    def test_generate_operation_id(self):
        assert generate_operation_id("get", "/users/{id}") == "GET./users/{id}"


class TestMatching:
    def test_match_path(self):
        assert match_path("/users/{id}", "/users/42") == {"id": "42"}
        assert match_path("/users/{id}", "/users/42/orders") is None
        assert match_path("/users", "/users/") == {}

    def test_exact_path_wins_over_template(self, user_spec):
        op, params = match_operation(extract_operations(user_spec), "GET", "/users/me")
        assert op.id == "getCurrentUser"
        assert params == {}

    def test_template_match(self, user_spec):
        op, params = match_operation(extract_operations(user_spec), "get", "/users/abc")
        assert op.id == "getUser"
        assert params == {"id": "abc"}

    def test_method_must_match(self, user_spec):
        assert match_operation(extract_operations(user_spec), "PATCH", "/users/abc") is None

    def test_base_path_prefix(self):
        spec = {"openapi": "3.0.0", "servers": [{"url": "https://api.example.com/v1/"}], "paths": {}}
        assert base_paths(spec) == ["/v1"]
        assert base_paths(SWAGGER) == ["/api"]

        op, _ = match_operation(extract_operations(SWAGGER), "GET", "/api/pets", base_paths(SWAGGER))
        assert op.id == "listPets"


class TestValidateRequest:
    def test_missing_required_body(self, user_spec):
        op = ops_by_id(user_spec)["createUser"]
        violations = validate_request(op, HTTPRequest(method="POST", path="/users"), {}, user_spec)
        assert violations == ["Missing required request body"]

    def test_body_schema_violation(self, user_spec):
        op = ops_by_id(user_spec)["createUser"]
        request = HTTPRequest(
            method="POST",
            path="/users",
            headers={"content-type": "application/json"},
            body={"name": 1},
        )
        assert validate_request(op, request, {}, user_spec) == ["body.name: 1 is not of type 'string'"]

    def test_query_parameter_is_coerced(self, user_spec):
        op = ops_by_id(user_spec)["listUsers"]
        ok = HTTPRequest(method="GET", path="/users", query={"limit": "10"})
        bad = HTTPRequest(method="GET", path="/users", query={"limit": "ten"})

        assert validate_request(op, ok, {}, user_spec) == []
        assert validate_request(op, bad, {}, user_spec) == ["query.limit: 'ten' is not of type 'integer'"]

    def test_missing_path_parameter(self, user_spec):
        op = ops_by_id(user_spec)["getUser"]
        violations = validate_request(op, HTTPRequest(method="GET", path="/users"), {}, user_spec)
        assert violations == ["Missing required path parameter: id"]

    def test_swagger_body_parameter(self):
        op = ops_by_id(SWAGGER)["createPet"]
        request = HTTPRequest(method="POST", path="/api/pets", body={})
        assert validate_request(op, request, {}, SWAGGER) == ["body: 'name' is a required property"]


class TestSpecResponse:
    def test_synthesized_from_schema(self, user_spec):
        status, headers, body, source = spec_response(ops_by_id(user_spec)["getUser"], user_spec)
        assert status == 200
        assert headers == {"content-type": "application/json"}
        assert source is ResponseSource.SYNTHESIZED
        assert set(body) == {"id", "name", "email", "active"}

    def test_example(self, user_spec):
        status, _, body, source = spec_response(ops_by_id(user_spec)["createUser"], user_spec)
        assert (status, body, source) == (201, {"id": "u-1", "name": "Ada"}, ResponseSource.EXAMPLE)

    def test_no_content(self, user_spec):
        status, headers, body, _ = spec_response(ops_by_id(user_spec)["DELETE./users/{id}"], user_spec)
        assert (status, headers, body) == (204, {}, None)

    def test_nothing_derivable(self, user_spec):
        assert spec_response(ops_by_id(user_spec)["getReports"], user_spec) is None

    def test_swagger_responses(self):
        ops = ops_by_id(SWAGGER)
        assert spec_response(ops["listPets"], SWAGGER)[2] == ["string"]
        assert spec_response(ops["createPet"], SWAGGER)[2] == {"name": "Rex"}

    def test_integer_status_keys(self):
        spec = {
            "openapi": "3.0.0",
            "paths": {
                "/pets": {
                    "get": {
                        "operationId": "listPets",
                        "responses": {200: {"content": {"application/json": {"example": [{"name": "Rex"}]}}}},
                    }
                }
            },
        }
        op = ops_by_id(spec)["listPets"]

        status, _, body, source = spec_response(op, spec)

        assert (status, body, source) == (200, [{"name": "Rex"}], ResponseSource.EXAMPLE)
        assert response_schema(op, 200, spec) is None

    def test_response_schema_lookup(self, user_spec):
        op = ops_by_id(user_spec)["getUser"]
        assert response_schema(op, 200, user_spec) == {"$ref": "#/components/schemas/User"}
        assert response_schema(op, 404, user_spec) is None


@pytest.mark.parametrize(
    "method,path,expected",
    [
        ("GET", "/orders/{id}", "getOrder"),
        ("GET", "/orders/550e8400-e29b-41d4-a716-446655440000", "getOrder"),
        ("DELETE", "/castles/12345", "deleteCastle"),
        ("POST", "/orders", "postOrder"),
        ("GET", "/", "get"),
    ],
)
def test_extract_operation_from_path(method, path, expected):
    assert extract_operation_from_path(method, path) == expected
