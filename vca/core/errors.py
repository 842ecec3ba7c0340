"""Failure taxonomy for staging and image generation.

Every class carries a short `category` label. The workflow uses it to build the
user-facing notification; providers raise these classes at their boundary after
translating transport-level `httpx` exceptions.

Propagation:
    Provider errors never escape `WorkflowStateMachine.generate_preview` or
    `generate_final_scene`. They are converted into a fallback image or the
    `"error"` sentinel there.
"""


class StagingError(RuntimeError):
    """Base class for all staging failures."""

    category = "staging"


class ValidationRejected(StagingError):
    """Container leaves too little clearance above the nominal pot height."""

    category = "validation"


class MissingCredential(StagingError):
    """No API key/token configured for the selected provider."""

    category = "credentials"


class SafetyBlocked(StagingError):
    """Provider stopped generation for a moderation/safety reason."""

    category = "safety"

    def __init__(self, reason: str, message: str | None = None) -> None:
        self.reason = reason
        super().__init__(message or f"Content blocked by safety filters ({reason}).")


class ProviderTimeout(StagingError):
    """Asynchronous job did not reach a terminal state within the poll budget."""

    category = "timeout"


class ProviderRequestFailed(StagingError):
    """Transport failure, non-2xx response or a failed/canceled provider job."""

    category = "provider"

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class NoResultReturned(StagingError):
    """Provider answered successfully but without an image payload."""

    category = "no_result"
