"""
GraphQL support for the mock engine.

Operations are the root fields of the schema, addressed as ``Query.<field>``,
``Mutation.<field>`` or ``Subscription.<field>``. Requests are resolved by
parsing the query text from the body.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Optional

import structlog
from graphql import (
    DocumentNode,
    FieldNode,
    FragmentDefinitionNode,
    FragmentSpreadNode,
    GraphQLError,
    GraphQLSchema,
    InlineFragmentNode,
    OperationDefinitionNode,
    SelectionSetNode,
    build_client_schema,
    build_schema,
    get_named_type,
    introspection_from_schema,
    is_abstract_type,
    is_enum_type,
    is_list_type,
    is_non_null_type,
    is_object_type,
    parse,
    validate,
)

from accord.mock.operations import Operation
from accord.models import HTTPRequest, SpecType, get_header

logger = structlog.get_logger()

ROOT_KINDS = (("query", "Query"), ("mutation", "Mutation"), ("subscription", "Subscription"))
INTROSPECTION_FIELDS = ("__schema", "__type")
MAX_DEPTH = 8

SCALAR_SAMPLES: dict[str, Any] = {
    "Int": 0,
    "Float": 0.0,
    "String": "string",
    "Boolean": True,
    "ID": "1",
}


def load_schema(document: Any) -> GraphQLSchema:
    """Build a schema from SDL text, ``{"schema": sdl}`` or an introspection result."""
    if isinstance(document, GraphQLSchema):
        return document
    if isinstance(document, str):
        return build_schema(document)
    if isinstance(document, dict):
        if "__schema" in document:
            return build_client_schema(document)
        if isinstance(document.get("data"), dict) and "__schema" in document["data"]:
            return build_client_schema(document["data"])
        if isinstance(document.get("schema"), str):
            return build_schema(document["schema"])
    raise ValueError("Unsupported GraphQL schema document")


def operation_id(kind: str, field_name: str) -> str:
    prefix = dict(ROOT_KINDS).get(kind, kind.capitalize())
    return f"{prefix}.{field_name}"


def extract_operations(schema: GraphQLSchema) -> list[Operation]:
    operations = []
    for kind, _ in ROOT_KINDS:
        root = getattr(schema, f"{kind}_type")
        if root is None:
            continue
        for name, gql_field in root.fields.items():
            operations.append(
                Operation(
                    id=operation_id(kind, name),
                    spec_type=SpecType.GRAPHQL,
                    kind=kind,
                    field_name=name,
                    description=gql_field.description,
                    deprecated=gql_field.deprecation_reason is not None,
                    definition=gql_field,
                )
            )
    return operations


@dataclass
class GraphQLRequest:
    """A parsed GraphQL request: the document, chosen operation and variables."""

    document: DocumentNode
    operation: OperationDefinitionNode
    variables: dict[str, Any] = field(default_factory=dict)

    @property
    def kind(self) -> str:
        return self.operation.operation.value

    @property
    def fragments(self) -> dict[str, FragmentDefinitionNode]:
        return {
            d.name.value: d for d in self.document.definitions if isinstance(d, FragmentDefinitionNode)
        }

    @property
    def root_fields(self) -> list[FieldNode]:
        return collect_fields(self.operation.selection_set, self.fragments)

    @property
    def is_introspection(self) -> bool:
        return any(f.name.value in INTROSPECTION_FIELDS for f in self.root_fields)


def collect_fields(
    selection_set: Optional[SelectionSetNode],
    fragments: dict[str, FragmentDefinitionNode],
    type_name: Optional[str] = None,
) -> list[FieldNode]:
    """Flatten a selection set, expanding fragments that apply to ``type_name``."""
    if selection_set is None:
        return []

    fields: list[FieldNode] = []
    for selection in selection_set.selections:
        if isinstance(selection, FieldNode):
            fields.append(selection)
        elif isinstance(selection, InlineFragmentNode):
            condition = selection.type_condition.name.value if selection.type_condition else None
            if condition is None or type_name is None or condition == type_name:
                fields.extend(collect_fields(selection.selection_set, fragments, type_name))
        elif isinstance(selection, FragmentSpreadNode):
            fragment = fragments.get(selection.name.value)
            if fragment is not None:
                condition = fragment.type_condition.name.value
                if type_name is None or condition == type_name:
                    fields.extend(collect_fields(fragment.selection_set, fragments, type_name))
    return fields


def _query_payload(request: HTTPRequest) -> tuple[Optional[str], Optional[str], dict[str, Any]]:
    body = request.body
    content_type = get_header(request.headers, "content-type")

    if isinstance(body, str) and "application/graphql" in content_type:
        return body, None, {}

    if isinstance(body, dict):
        variables = _decode_variables(body.get("variables"))
        return body.get("query") or body.get("mutation"), body.get("operationName"), variables

    query = request.query.get("query")
    if query:
        raw_variables = request.query.get("variables")
        try:
            variables = json.loads(raw_variables) if raw_variables else {}
        except ValueError:
            variables = {}
        if not isinstance(variables, dict):
            variables = {}
        return query, request.query.get("operationName"), variables

    return None, None, {}


def _decode_variables(raw: Any) -> dict[str, Any]:
    # Many clients send variables as a JSON-encoded string
    if isinstance(raw, str):
        try:
            raw = json.loads(raw) if raw.strip() else None
        except ValueError as exc:
            raise GraphQLError("Variables are not valid JSON") from exc
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise GraphQLError("Variables must be an object")
    return raw


def parse_request(request: HTTPRequest) -> Optional[GraphQLRequest]:
    """
    Parse the GraphQL document carried by a request.

    Returns None when the request carries no query.

    Raises:
        GraphQLError: the query text does not parse, names an unknown
            operation, or the query or variables are malformed
    """
    query, operation_name, variables = _query_payload(request)
    if not query:
        return None
    if not isinstance(query, str):
        raise GraphQLError("Query must be a string")

    document = parse(query)
    operations = [d for d in document.definitions if isinstance(d, OperationDefinitionNode)]
    if not operations:
        raise GraphQLError("Document contains no operation")

    if operation_name:
        chosen = next((o for o in operations if o.name and o.name.value == operation_name), None)
        if chosen is None:
            raise GraphQLError(f"Unknown operation named '{operation_name}'")
    else:
        chosen = operations[0]

    return GraphQLRequest(document=document, operation=chosen, variables=dict(variables or {}))


def resolve_operation(
    operations: dict[str, Operation], parsed: GraphQLRequest
) -> Optional[tuple[Operation, FieldNode]]:
    """The spec operation for the first root field the request selects."""
    for field_node in parsed.root_fields:
        op = operations.get(operation_id(parsed.kind, field_node.name.value))
        if op is not None:
            return op, field_node
    return None


def validate_request(schema: GraphQLSchema, parsed: GraphQLRequest) -> list[str]:
    return [error.message for error in validate(schema, parsed.document)]


def _sample(
    schema: GraphQLSchema,
    gql_type: Any,
    selection_set: Optional[SelectionSetNode],
    fragments: dict[str, FragmentDefinitionNode],
    depth: int,
) -> Any:
    if is_non_null_type(gql_type):
        return _sample(schema, gql_type.of_type, selection_set, fragments, depth)

    if is_list_type(gql_type):
        return [_sample(schema, gql_type.of_type, selection_set, fragments, depth)]

    named = get_named_type(gql_type)

    if is_enum_type(named):
        values = list(named.values)
        return values[0] if values else None

    if is_abstract_type(named):
        possible = schema.get_possible_types(named)
        if not possible:
            return None
        named = possible[0]

    if is_object_type(named):
        if depth > MAX_DEPTH:
            return None
        value: dict[str, Any] = {}
        for node in collect_fields(selection_set, fragments, named.name):
            key = node.alias.value if node.alias else node.name.value
            if node.name.value == "__typename":
                value[key] = named.name
                continue
            child = named.fields.get(node.name.value)
            if child is None:
                continue
            value[key] = _sample(schema, child.type, node.selection_set, fragments, depth + 1)
        return value

    return SCALAR_SAMPLES.get(named.name, "string")


def synthesize_response(schema: GraphQLSchema, parsed: GraphQLRequest) -> dict[str, Any]:
    """A ``{"data": ...}`` body shaped by the request's selection set."""
    if parsed.is_introspection:
        return {"data": introspection_from_schema(schema)}

    root = getattr(schema, f"{parsed.kind}_type")
    data: dict[str, Any] = {}
    if root is None:
        return {"data": data}

    for node in parsed.root_fields:
        key = node.alias.value if node.alias else node.name.value
        if node.name.value == "__typename":
            data[key] = root.name
            continue
        root_field = root.fields.get(node.name.value)
        if root_field is not None:
            data[key] = _sample(schema, root_field.type, node.selection_set, parsed.fragments, 1)
    return {"data": data}


def variables_match(request_variables: dict[str, Any], fixture_request: Any) -> bool:
    """True when every request variable equals the fixture's recorded value."""
    fixture_body = fixture_request.get("body") if isinstance(fixture_request, dict) else None
    fixture_variables: dict[str, Any] = {}
    if isinstance(fixture_body, dict):
        fixture_variables = fixture_body.get("variables") or {}
    return all(fixture_variables.get(key) == value for key, value in request_variables.items())
