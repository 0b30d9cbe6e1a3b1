"""Library exceptions."""

from typing import Optional


class TodosError(Exception):
    """Base ToDos error."""


# ------------------------------- Transport -----------------------------------


class TodosAuthError(TodosError):
    """Auth/web-token issues (401/403/421)."""


class TodosRateLimited(TodosError):
    """429 Too Many Requests / 503 with Retry-After."""

    def __init__(self, message: str, retry_after: Optional[float] = None):
        super().__init__(message)
        self.retry_after = retry_after


class TodosApiError(TodosError):
    """Catch-all API error."""

    def __init__(self, message: str, payload: Optional[object] = None):
        super().__init__(message)
        self.payload = payload


class TodosTransportError(TodosApiError):
    """The request never produced an HTTP response (connection, timeout)."""


# -------------------------------- Domain -------------------------------------


class RecordNotFound(TodosError):
    """A lookup returned no record for the requested name."""


class InvalidRemoteShare(TodosError):
    """A share back-reference resolved to something that is not a share."""


class ZoneCreationFailure(TodosError):
    """The private ToDos zone could not be created."""


class DecodeFailure(ValueError):
    """A record is missing a required field or has it in the wrong shape."""
