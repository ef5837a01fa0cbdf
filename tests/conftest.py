"""Root test configuration."""

import logging
from datetime import datetime, timedelta, timezone

import pytest
import structlog

from accord.config import Settings
from accord.fixtures.models import Fixture, FixtureData, FixtureStatus
from accord.models import SpecType

BROKER_URL = "https://broker.example.com"


def pytest_configure(config):
    """Configure structlog for tests to suppress debug/info output."""
    logging.basicConfig(level=logging.WARNING, force=True)
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.processors.add_log_level,
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer(),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )


@pytest.fixture(autouse=True)
def _isolate_environment(monkeypatch):
    """Keep CI/git env vars of the machine running the tests out of the results."""
    for var in ("CI", "BUILD_ID", "COMMIT_SHA", "GITHUB_SHA", "GIT_COMMIT"):
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def settings():
    return Settings(
        service_url=BROKER_URL,
        api_key="test-key",
        environment="test",
        consumer="web-app",
        consumer_version="1.0.0",
        provider="user-service",
        provider_version="1.2.3",
        http_max_retries=1,
        replay_timeout=5.0,
    )


@pytest.fixture
def user_spec():
    """A small OpenAPI 3 document for a user service."""
    return {
        "openapi": "3.0.0",
        "info": {"title": "user-service", "version": "1.2.3"},
        "paths": {
            "/users": {
                "get": {
                    "operationId": "listUsers",
                    "parameters": [
                        {"name": "limit", "in": "query", "schema": {"type": "integer"}},
                    ],
                    "responses": {
                        "200": {
                            "description": "Users",
                            "content": {
                                "application/json": {
                                    "schema": {
                                        "type": "array",
                                        "items": {"$ref": "#/components/schemas/User"},
                                    }
                                }
                            },
                        }
                    },
                },
                "post": {
                    "operationId": "createUser",
                    "requestBody": {
                        "required": True,
                        "content": {
                            "application/json": {
                                "schema": {
                                    "type": "object",
                                    "required": ["name"],
                                    "properties": {"name": {"type": "string"}},
                                }
                            }
                        },
                    },
                    "responses": {
                        "201": {
                            "description": "Created",
                            "content": {
                                "application/json": {
                                    "example": {"id": "u-1", "name": "Ada"},
                                }
                            },
                        }
                    },
                },
            },
            "/users/{id}": {
                "parameters": [
                    {"name": "id", "in": "path", "required": True, "schema": {"type": "string"}},
                ],
                "get": {
                    "operationId": "getUser",
                    "responses": {
                        "200": {
                            "description": "A user",
                            "content": {
                                "application/json": {
                                    "schema": {"$ref": "#/components/schemas/User"},
                                }
                            },
                        },
                        "404": {"description": "Not found"},
                    },
                },
                "delete": {
                    "responses": {"204": {"description": "Deleted"}},
                },
            },
            "/users/me": {
                "get": {
                    "operationId": "getCurrentUser",
                    "responses": {
                        "200": {
                            "description": "Me",
                            "content": {"application/json": {"example": {"id": "me", "name": "Me"}}},
                        }
                    },
                },
            },
            "/reports": {
                "get": {
                    "operationId": "getReports",
                    "responses": {"200": {"description": "Opaque", "content": {"application/json": {}}}},
                },
            },
        },
        "components": {
            "schemas": {
                "User": {
                    "type": "object",
                    "required": ["id", "name"],
                    "properties": {
                        "id": {"type": "string", "format": "uuid"},
                        "name": {"type": "string"},
                        "email": {"type": "string", "format": "email"},
                        "active": {"type": "boolean"},
                    },
                }
            }
        },
    }


@pytest.fixture
def make_fixture():
    """Factory for fixtures with sensible defaults."""

    def _make(
        fixture_id="fx-1",
        operation="getUser",
        status=FixtureStatus.APPROVED,
        priority=1,
        request=None,
        response=None,
        age_minutes=0,
        spec_type=SpecType.OPENAPI,
    ):
        return Fixture(
            id=fixture_id,
            service="user-service",
            service_version="1.2.3",
            operation=operation,
            data=FixtureData(
                request=request,
                response=response if response is not None else {"status": 200, "body": {"id": "1"}},
            ),
            status=status,
            priority=priority,
            spec_type=spec_type,
            created_at=datetime(2024, 1, 1, tzinfo=timezone.utc) - timedelta(minutes=age_minutes),
        )

    return _make
