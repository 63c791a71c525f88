"""
Error taxonomy for the profile recommendation engine.

Every error carries the HTTP status and machine-readable code the API layer
renders, plus a ``retryable`` hint for clients.

Recovery rules:
    - ValidationError on an analyzer draft is recovered inside the generator
      (the draft is dropped). On a request it is surfaced as 422.
    - ConflictError is recovered inside apply-all (the recommendation is
      reported as skipped with reason "conflict").
    - Everything else is surfaced to the caller unchanged.
"""

from typing import Any, Optional


class ProfileEngineError(Exception):
    """Base class for all engine errors."""

    status_code: int = 500
    code: str = "INTERNAL_ERROR"
    retryable: bool = False

    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.details = details


class ValidationError(ProfileEngineError):
    """A draft or request is missing required fields or is incoherent."""

    status_code = 422
    code = "VALIDATION_ERROR"


class ConflictError(ProfileEngineError):
    """The text a recommendation targets is no longer in the section."""

    status_code = 409
    code = "CONFLICT"


class InvalidStateError(ProfileEngineError):
    """The recommendation or version is not in the state the operation requires."""

    status_code = 409
    code = "INVALID_STATE"


class NotFoundError(ProfileEngineError):
    status_code = 404
    code = "NOT_FOUND"

    def __init__(self, resource: str):
        super().__init__(f"{resource} not found")


class GenerationTimeoutError(ProfileEngineError):
    """The external analyzer did not answer within its time budget."""

    status_code = 504
    code = "GENERATION_TIMEOUT"
    retryable = True


class AnalyzerError(ProfileEngineError):
    """The external analyzer failed or returned something unparseable."""

    status_code = 502
    code = "ANALYZER_ERROR"
    retryable = True


class PersistenceError(ProfileEngineError):
    """A version/status commit failed and was rolled back."""

    status_code = 500
    code = "PERSISTENCE_ERROR"
    retryable = True


class RateLimitError(ProfileEngineError):
    status_code = 429
    code = "RATE_LIMIT_EXCEEDED"
    retryable = True
