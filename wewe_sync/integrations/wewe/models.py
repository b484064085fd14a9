"""Typed requests and payloads for the WeWe RSS platform API."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Mapping

from .errors import CredentialFormatError

ARTICLE_URL_TEMPLATE = "https://mp.weixin.qq.com/s/{article_id}"


@dataclass(frozen=True)
class Credential:
    """An account's external identity, sent with every authenticated call.

    ``external_id`` is the platform's account id (``vid``), never the local
    store id.
    """

    external_id: str
    token: str

    def validate(self) -> None:
        """Raise :class:`CredentialFormatError` if a sub-field is missing."""
        if not self.external_id or not self.token:
            raise CredentialFormatError(
                "Account credential is incomplete; sign in again to re-issue it."
            )

    def headers(self) -> dict[str, str]:
        return {
            "xid": self.external_id,
            "Authorization": f"Bearer {self.token}",
        }

    def to_dict(self) -> dict[str, str]:
        return {"external_id": self.external_id, "token": self.token}

    @classmethod
    def from_payload(cls, payload: Any) -> "Credential":
        """Parse a stored credential.

        Legacy records stored a bare token string; those load with an empty
        ``external_id`` and fail validation at call time.
        """
        if isinstance(payload, Mapping):
            return cls(
                external_id=str(payload.get("external_id") or ""),
                token=str(payload.get("token") or ""),
            )
        if isinstance(payload, str):
            return cls(external_id="", token=payload)
        return cls(external_id="", token="")

    def __repr__(self) -> str:
        return f"Credential(external_id={self.external_id!r}, token='***')"


@dataclass(frozen=True)
class RetryPolicy:
    """Retry settings for one logical call.

    Attributes:
        max_attempts: Total attempts, including the first one.
        base_delay: Delay before the second attempt; doubled afterwards.
        timeout: Timeout applied to each attempt independently.
    """

    max_attempts: int = 3
    base_delay: float = 1.0
    timeout: float = 15.0

    def delay_for(self, attempt: int) -> float:
        """Backoff before retrying after the given 1-based attempt."""
        return self.base_delay * (2 ** (attempt - 1))


@dataclass(frozen=True)
class ApiRequest:
    """A single platform request, relative to the client's base URL."""

    method: str
    path: str
    params: Mapping[str, str] | None = None
    json_body: Mapping[str, Any] | None = None
    authenticated: bool = True
    headers: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class LoginUrl:
    """Start of a login handshake."""

    uuid: str
    scan_url: str


@dataclass(frozen=True)
class LoginResult:
    """Result of polling a login handshake."""

    message: str
    vid: str | None = None
    token: str | None = None
    username: str | None = None

    @property
    def completed(self) -> bool:
        return bool(self.vid and self.token)

    @classmethod
    def from_api_payload(cls, payload: Mapping[str, Any]) -> "LoginResult":
        vid = payload.get("vid")
        return cls(
            message=str(payload.get("message") or ""),
            vid=str(vid) if vid not in (None, "") else None,
            token=payload.get("token") or None,
            username=payload.get("username") or None,
        )


@dataclass(frozen=True)
class MpInfo:
    """A public account (feed) resolved from a share link."""

    id: str
    name: str
    intro: str = ""
    cover: str = ""
    update_time: int = 0

    @classmethod
    def from_api_payload(cls, payload: Mapping[str, Any]) -> "MpInfo":
        return cls(
            id=str(payload["id"]),
            name=str(payload.get("name") or payload["id"]),
            intro=str(payload.get("intro") or ""),
            cover=str(payload.get("cover") or ""),
            update_time=int(payload.get("updateTime") or 0),
        )


@dataclass(frozen=True)
class MpArticle:
    """One article entry of a public account's article list."""

    id: str
    title: str
    publish_time: int
    pic_url: str = ""

    @property
    def source_url(self) -> str:
        return ARTICLE_URL_TEMPLATE.format(article_id=self.id)

    @property
    def published_at(self) -> datetime:
        return datetime.fromtimestamp(self.publish_time, tz=timezone.utc)

    @classmethod
    def from_api_payload(cls, payload: Mapping[str, Any]) -> "MpArticle":
        return cls(
            id=str(payload["id"]),
            title=str(payload.get("title") or ""),
            publish_time=int(payload.get("publishTime") or 0),
            pic_url=str(payload.get("picUrl") or ""),
        )
