"""
Contract verification: structural comparison and provider-side replay.

Replay lives in ``accord.verification.replay``; it is not re-exported here
because it depends on the broker client, which itself imports these models.
"""

from accord.verification.comparator import (
    js_type,
    validate_json_structure,
    validate_response,
    validate_response_content,
)
from accord.verification.models import (
    ComparisonOutcome,
    ErrorDetails,
    MismatchType,
    ProviderVerificationResults,
    TaskState,
    VerificationResult,
    VerificationTask,
)

__all__ = [
    "ComparisonOutcome",
    "ErrorDetails",
    "MismatchType",
    "ProviderVerificationResults",
    "TaskState",
    "VerificationResult",
    "VerificationTask",
    "js_type",
    "validate_json_structure",
    "validate_response",
    "validate_response_content",
]
