"""Error taxonomy for the audience ingestion pipeline."""


class AudienceError(Exception):
    """Base error. ``retryable`` tells callers whether replaying is safe."""

    code = "audience_error"
    retryable = False

    def __init__(self, message: str, **context: object) -> None:
        super().__init__(message)
        self.message = message
        self.context = context


class ValidationError(AudienceError):
    """Malformed or missing required fields; raised before any DB work."""

    code = "invalid_payload"


class NotFoundError(AudienceError):
    """The referenced creator does not exist."""

    code = "not_found"


class ForbiddenError(AudienceError):
    """The creator exists but does not accept public interactions."""

    code = "forbidden"


class ResolutionConflictError(AudienceError):
    """Insert was skipped on conflict but the winning row could not be re-read."""

    code = "resolution_conflict"
    retryable = True


class TransientStoreError(AudienceError):
    """Connection drop, timeout, deadlock or serialization failure. Rolled back."""

    code = "transient_store_error"
    retryable = True


class InternalPipelineError(AudienceError):
    """The store refused the write for a reason replaying will not fix.

    Covers constraint and programming errors as well as unexpected bugs.
    The original exception is logged, never returned to the caller.
    """

    code = "internal_error"
