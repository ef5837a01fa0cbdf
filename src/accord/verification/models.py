"""
Models for contract verification.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, List, Optional

from accord.models import ClientInteraction, HTTPResponse, SpecType, parse_timestamp, utcnow


class MismatchType(Enum):
    """Category of a failed comparison."""

    STATUS = "status_mismatch"
    STRUCTURE = "structure_mismatch"
    CONTENT = "content_mismatch"


class TaskState(Enum):
    """Lifecycle of a verification task on the provider side."""

    OPEN = "open"
    PROCESSING = "processing"
    SUBMITTED = "submitted"


@dataclass
class ErrorDetails:
    """Why an interaction failed: expected vs. actual at a field path."""

    type: MismatchType
    message: str
    expected: Any = None
    actual: Any = None
    field: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "type": self.type.value,
            "message": self.message,
            "expected": self.expected,
            "actual": self.actual,
        }
        if self.field is not None:
            payload["field"] = self.field
        return payload

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ErrorDetails:
        return cls(
            type=MismatchType(data.get("type", "structure_mismatch")),
            message=data.get("message", ""),
            expected=data.get("expected"),
            actual=data.get("actual"),
            field=data.get("field"),
        )


@dataclass
class ComparisonOutcome:
    """Result of comparing an expected response with an actual one."""

    success: bool
    error: Optional[str] = None
    error_details: Optional[ErrorDetails] = None

    @classmethod
    def ok(cls) -> ComparisonOutcome:
        return cls(success=True)

    @classmethod
    def fail(
        cls,
        mismatch: MismatchType,
        message: str,
        *,
        expected: Any = None,
        actual: Any = None,
        field: Optional[str] = None,
    ) -> ComparisonOutcome:
        return cls(
            success=False,
            error=message,
            error_details=ErrorDetails(
                type=mismatch,
                message=message,
                expected=expected,
                actual=actual,
                field=field,
            ),
        )


@dataclass
class VerificationResult:
    """Result of replaying a single interaction."""

    interaction_id: str
    success: bool
    error: Optional[str] = None
    error_details: Optional[ErrorDetails] = None
    actual_response: Optional[HTTPResponse] = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "interactionId": self.interaction_id,
            "success": self.success,
        }
        if self.error is not None:
            payload["error"] = self.error
        if self.error_details is not None:
            payload["errorDetails"] = self.error_details.to_dict()
        if self.actual_response is not None:
            payload["actualResponse"] = self.actual_response.to_dict()
        return payload


@dataclass
class VerificationTask:
    """
    A set of consumer interactions the provider must replay.

    Created by the broker; ``state`` is tracked locally while the task is
    being worked.
    """

    id: str
    provider: str
    provider_version: str
    consumer: str
    consumer_version: str
    environment: str
    interactions: List[ClientInteraction] = field(default_factory=list)
    consumer_git_sha: Optional[str] = None
    spec_type: Optional[SpecType] = None
    created_at: datetime = field(default_factory=utcnow)
    state: TaskState = TaskState.OPEN

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> VerificationTask:
        spec_type = data.get("specType")
        return cls(
            id=str(data.get("id", "")),
            provider=data.get("provider", ""),
            provider_version=data.get("providerVersion", ""),
            consumer=data.get("consumer", ""),
            consumer_version=data.get("consumerVersion", ""),
            consumer_git_sha=data.get("consumerGitSha"),
            environment=data.get("environment", ""),
            spec_type=SpecType(spec_type) if spec_type else None,
            interactions=[ClientInteraction.from_dict(i) for i in data.get("interactions") or []],
            created_at=parse_timestamp(data.get("createdAt")) or utcnow(),
        )


@dataclass
class ProviderVerificationResults:
    """All results from one provider verification run."""

    provider_version: str
    provider_git_sha: Optional[str] = None
    results: List[VerificationResult] = field(default_factory=list)
    task_ids: List[str] = field(default_factory=list)

    @property
    def passed(self) -> List[VerificationResult]:
        return [r for r in self.results if r.success]

    @property
    def failed(self) -> List[VerificationResult]:
        return [r for r in self.results if not r.success]

    @property
    def all_passed(self) -> bool:
        return not self.failed

    @property
    def exit_code(self) -> int:
        """
        Exit code for CI/CD pipelines.

        0 = All interactions verified
        1 = One or more interactions failed
        """
        return 0 if self.all_passed else 1
