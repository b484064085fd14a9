"""Classified failures of the WeWe RSS platform API."""

from __future__ import annotations

import re
from enum import Enum


class ErrorKind(str, Enum):
    """How a failed API call is classified.

    Only ``NETWORK`` and ``SERVER`` are transient and retried by the client.
    """

    NETWORK = "network"
    SERVER = "server"
    RATE_LIMITED = "rate_limited"
    UNAUTHORIZED = "unauthorized"
    BAD_REQUEST = "bad_request"
    CREDENTIAL_FORMAT = "credential_format"
    UNEXPECTED = "unexpected"

    @property
    def retryable(self) -> bool:
        return self in (ErrorKind.NETWORK, ErrorKind.SERVER)


_STATUS_KINDS: dict[int, ErrorKind] = {
    400: ErrorKind.BAD_REQUEST,
    401: ErrorKind.UNAUTHORIZED,
    403: ErrorKind.UNAUTHORIZED,
    429: ErrorKind.RATE_LIMITED,
    500: ErrorKind.SERVER,
    502: ErrorKind.SERVER,
    503: ErrorKind.SERVER,
    504: ErrorKind.SERVER,
}

# The platform reports upstream failures as e.g. "WeReadError429" in the body.
_WEREAD_CODE = re.compile(r"WeReadError(\d{3})")


def classify_status(status_code: int, body: str = "") -> ErrorKind:
    """Map an HTTP status (and the platform's body code) to an ErrorKind."""
    kind = _STATUS_KINDS.get(status_code)
    if kind is not None:
        return kind
    match = _WEREAD_CODE.search(body or "")
    if match:
        return _STATUS_KINDS.get(int(match.group(1)), ErrorKind.UNEXPECTED)
    return ErrorKind.UNEXPECTED


class WeReadApiError(Exception):
    """A failed platform call with its classification."""

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        *,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.status_code = status_code

    @property
    def retryable(self) -> bool:
        return self.kind.retryable

    def __repr__(self) -> str:
        return f"WeReadApiError(kind={self.kind.value!r}, status_code={self.status_code!r}, message={str(self)!r})"


class CredentialFormatError(WeReadApiError):
    """Raised before any network I/O when a credential is incomplete."""

    def __init__(self, message: str) -> None:
        super().__init__(ErrorKind.CREDENTIAL_FORMAT, message)
