"""Error taxonomy shared by pipeline stages and external clients."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum


class FailureKind(StrEnum):
    CONFIGURATION = "configuration"
    TRANSPORT = "transport"
    PROVIDER = "provider"
    EMPTY_RESULT = "empty_result"
    PERSISTENCE = "persistence"
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    INVALID_STATE = "invalid_state"
    INTERNAL = "internal"


class PipelineError(Exception):
    """Base class for expected failures raised by clients and stores."""

    kind: FailureKind = FailureKind.PROVIDER


class ConfigurationError(PipelineError):
    """A credential or setting required for the call is missing."""

    kind = FailureKind.CONFIGURATION


class TransportError(PipelineError):
    """Network failure or timeout talking to an external API."""

    kind = FailureKind.TRANSPORT


class ProviderError(PipelineError):
    """Non-2xx status or structured error body returned by an external API."""

    kind = FailureKind.PROVIDER

    def __init__(self, message: str, *, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class EmptyResultError(PipelineError):
    """The API call succeeded but returned no usable content."""

    kind = FailureKind.EMPTY_RESULT


class PersistenceError(PipelineError):
    """A storage write failed."""

    kind = FailureKind.PERSISTENCE


class ValidationError(PipelineError):
    """A headline failed pre-intake checks."""

    kind = FailureKind.VALIDATION

    def __init__(self, errors: list[str]) -> None:
        super().__init__("; ".join(errors))
        self.errors = list(errors)


class InvalidTransition(ValueError):
    """Raised when a status change is not permitted by the transition table."""


@dataclass(frozen=True)
class StageFailure:
    """Failure value returned across a stage boundary instead of raising."""

    kind: FailureKind
    message: str

    @classmethod
    def from_error(cls, error: PipelineError) -> "StageFailure":
        return cls(kind=error.kind, message=str(error))

    def to_dict(self) -> dict[str, str]:
        return {"kind": self.kind.value, "message": self.message}
