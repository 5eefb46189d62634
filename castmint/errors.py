"""Exception types shared by the queue, pipeline and HTTP layers."""
from typing import Optional


class CastmintError(Exception):
    """Base class for all castmint errors."""

    code = "INTERNAL_ERROR"
    retryable = False


class ValidationError(CastmintError):
    """Malformed input or a missing payable address. Never retried."""

    code = "VALIDATION_ERROR"


class TransientError(CastmintError):
    """A failure worth retrying at the call site."""

    code = "TRANSIENT_ERROR"
    retryable = True


class ServiceTimeout(TransientError):
    """An outbound call exceeded its timeout."""

    code = "TIMEOUT"


class TransportError(TransientError):
    """Connection reset, refused, or an upstream 5xx."""

    code = "TRANSPORT_ERROR"


class ServiceError(CastmintError):
    """A collaborator answered, but with a semantic failure."""

    code = "SERVICE_ERROR"

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class NotFoundError(ServiceError):
    code = "NOT_FOUND"


class RateLimitedError(ServiceError):
    code = "RATE_LIMITED"

    def __init__(self, message: str, retry_after: Optional[float] = None, status_code: Optional[int] = 429):
        super().__init__(message, status_code)
        self.retry_after = retry_after


class InsufficientFundsError(ServiceError):
    code = "INSUFFICIENT_FUNDS"


class StoreConnectionError(TransientError):
    """The queue store could not be reached."""

    code = "STORE_UNAVAILABLE"


class HistoryStoreError(CastmintError):
    """The mint history database failed."""

    code = "HISTORY_ERROR"

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        if code:
            self.code = code


class HistoryUnavailableError(TransientError):
    """The history database dropped the connection or has none free."""

    code = "HISTORY_UNAVAILABLE"


class AlreadyMintedError(CastmintError):
    """The target was minted after this item was queued."""

    code = "ALREADY_MINTED"


class PipelineError(CastmintError):
    """A pipeline step failed for one work item.

    Carries the step name and the item's hashes so the failure can be
    recorded without re-deriving context. ``cause`` is the original error.
    """

    def __init__(self, step: str, work_hash: str, target_hash: str, cause: BaseException):
        self.step = step
        self.work_hash = work_hash
        self.target_hash = target_hash
        self.cause = cause
        super().__init__(f"[{step}] {cause}")

    @property
    def code(self) -> str:
        return getattr(self.cause, "code", "INTERNAL_ERROR")

    @property
    def retryable(self) -> bool:
        return bool(getattr(self.cause, "retryable", False))

    @property
    def reason(self) -> str:
        return str(self.cause) or type(self.cause).__name__
