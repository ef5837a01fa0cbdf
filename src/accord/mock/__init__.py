"""
Mock server: answers consumer test traffic from fixtures and the provider's spec.
"""

from accord.mock.engine import MockResponseEngine, RequestHandledEvent
from accord.mock.openapi import extract_operation_from_path
from accord.mock.operations import MockResult, Operation, ResponseSource
from accord.mock.server import MockServer

__all__ = [
    "MockResponseEngine",
    "MockResult",
    "MockServer",
    "Operation",
    "RequestHandledEvent",
    "ResponseSource",
    "extract_operation_from_path",
]
