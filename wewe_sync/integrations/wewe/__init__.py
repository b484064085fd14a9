"""WeWe RSS platform integration helpers."""

from __future__ import annotations


from .client import WeReadClient
from .errors import CredentialFormatError, ErrorKind, WeReadApiError, classify_status
from .models import (
    ApiRequest,
    Credential,
    LoginResult,
    LoginUrl,
    MpArticle,
    MpInfo,
    RetryPolicy,
)


__all__ = [
    "ApiRequest",
    "Credential",
    "CredentialFormatError",
    "ErrorKind",
    "LoginResult",
    "LoginUrl",
    "MpArticle",
    "MpInfo",
    "RetryPolicy",
    "WeReadApiError",
    "WeReadClient",
    "classify_status",
]
