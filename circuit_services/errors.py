from __future__ import annotations

"""
Error hierarchy for Circuit Services.

Every error carries:
  - ``status_code`` (int): HTTP status used by the request surface
  - ``code`` (str): stable machine code (e.g., "compile_failed")
  - ``message`` (str): human-friendly summary
  - ``details`` (dict|None): optional structured diagnostics

Pipeline errors additionally carry the verbatim tool lines (``errors``) and a
grouped rendering of them (``formatted``), so callers can show either.

Usage
-----
    from circuit_services.errors import ArtifactMissingError

    raise ArtifactMissingError("Verification key not found for circuit: Multiplier2")

The exceptions are framework-agnostic; ``middleware.errors`` maps them to JSON.
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional


@dataclass(eq=False)
class ApiError(Exception):
    message: str
    status_code: int = 400
    code: str = "bad_request"
    details: Optional[Mapping[str, Any]] = None

    def __post_init__(self) -> None:
        super().__init__(self.message)

    def to_body(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "success": False,
            "error": self.message,
            "code": self.code,
        }
        if self.details:
            body["details"] = dict(self.details)
        return body

    @classmethod
    def from_unexpected(cls, err: BaseException) -> "ApiError":
        """Reduce an unexpected exception to a generic server error."""
        return ServerError(
            "Unhandled server error",
            details={"exc_type": err.__class__.__name__, "str": str(err)},
        )


class BadRequest(ApiError):
    def __init__(self, message: str = "Bad request", *, details: Optional[Mapping[str, Any]] = None):
        super().__init__(message=message, status_code=400, code="bad_request", details=details)


class ServerError(ApiError):
    def __init__(self, message: str = "Internal server error", *, details: Optional[Mapping[str, Any]] = None):
        super().__init__(message=message, status_code=500, code="server_error", details=details)


# ------------------------------ Pipeline errors ------------------------------ #


class PipelineError(ApiError):
    """
    Base for artifact-lifecycle failures. ``errors`` are raw lines as the
    external tool printed them; ``formatted`` is the grouped rendering.
    """

    default_status = 400
    default_code = "pipeline_error"

    def __init__(
        self,
        message: str,
        *,
        errors: Optional[Iterable[str]] = None,
        formatted: Optional[str] = None,
        details: Optional[Mapping[str, Any]] = None,
    ):
        super().__init__(message=message, status_code=self.default_status, code=self.default_code, details=details)
        self.errors: List[str] = list(errors) if errors is not None else [message]
        self.formatted: str = formatted if formatted is not None else "\n".join(self.errors)

    def to_body(self) -> Dict[str, Any]:
        body = super().to_body()
        body["errors"] = list(self.errors)
        body["formattedErrors"] = self.formatted
        return body


class SyntaxPrecheckError(PipelineError):
    """Pragma mismatch or missing template/main; raised before the compiler runs."""

    default_code = "syntax_precheck_failed"


class CompilerDiagnosticError(PipelineError):
    """The compiler printed error lines (whatever its exit code was)."""

    default_code = "compile_failed"


class ArtifactMissingError(PipelineError):
    """An expected artifact, key or verification key is absent on disk."""

    default_status = 404
    default_code = "artifact_missing"


class SetupPrerequisiteError(PipelineError):
    """Universal setup parameters are absent and could not be fetched."""

    default_status = 503
    default_code = "setup_prerequisite_missing"


class KeySetupError(PipelineError):
    """The proving-system setup or contribution step failed."""

    default_status = 500
    default_code = "key_setup_failed"


class ProvingError(PipelineError):
    default_code = "proving_failed"


class VerificationFailure(PipelineError):
    """A proof that verified cleanly to ``False`` where ``True`` was required."""

    default_code = "verification_failed"


class StructuralValidationError(PipelineError):
    default_code = "invalid_proof_structure"


class ToolUnavailableError(PipelineError):
    """circom/snarkjs executable missing or not runnable."""

    default_status = 503
    default_code = "tool_unavailable"


class LedgerError(PipelineError):
    default_status = 502
    default_code = "ledger_error"


__all__ = [
    "ApiError",
    "BadRequest",
    "ServerError",
    "PipelineError",
    "SyntaxPrecheckError",
    "CompilerDiagnosticError",
    "ArtifactMissingError",
    "SetupPrerequisiteError",
    "KeySetupError",
    "ProvingError",
    "VerificationFailure",
    "StructuralValidationError",
    "ToolUnavailableError",
    "LedgerError",
]
