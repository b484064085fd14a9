"""Records persisted by the sync service."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from wewe_sync.integrations.wewe.models import Credential


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_dt(value: str | None) -> datetime | None:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _format_dt(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


class AccountStatus(str, Enum):
    ACTIVE = "active"
    BLACKLISTED = "blacklisted"
    EXPIRED = "expired"
    DISABLED = "disabled"


@dataclass(slots=True)
class Account:
    """A platform account whose credential is used for outbound calls."""

    id: int
    display_name: str
    credential: Credential
    status: AccountStatus = AccountStatus.ACTIVE
    blacklisted_until: datetime | None = None  # set iff status is BLACKLISTED
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def external_id(self) -> str:
        return self.credential.external_id

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "display_name": self.display_name,
            "credential": self.credential.to_dict(),
            "status": self.status.value,
            "blacklisted_until": _format_dt(self.blacklisted_until),
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "Account":
        status = AccountStatus(payload.get("status", AccountStatus.ACTIVE.value))
        blacklisted_until = _parse_dt(payload.get("blacklisted_until"))
        if status is not AccountStatus.BLACKLISTED:
            blacklisted_until = None
        return cls(
            id=int(payload["id"]),
            display_name=payload.get("display_name", ""),
            credential=Credential.from_payload(payload.get("credential")),
            status=status,
            blacklisted_until=blacklisted_until,
            created_at=_parse_dt(payload["created_at"]),
            updated_at=_parse_dt(payload.get("updated_at")) or _parse_dt(payload["created_at"]),
        )


@dataclass(slots=True)
class Feed:
    """A subscribed public account."""

    id: int
    external_feed_id: str
    title: str
    description: str
    owner_account_id: int
    last_sync_at: datetime | None = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "external_feed_id": self.external_feed_id,
            "title": self.title,
            "description": self.description,
            "owner_account_id": self.owner_account_id,
            "last_sync_at": _format_dt(self.last_sync_at),
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "Feed":
        return cls(
            id=int(payload["id"]),
            external_feed_id=payload["external_feed_id"],
            title=payload.get("title", ""),
            description=payload.get("description", ""),
            owner_account_id=int(payload["owner_account_id"]),
            last_sync_at=_parse_dt(payload.get("last_sync_at")),
            created_at=_parse_dt(payload["created_at"]),
            updated_at=_parse_dt(payload.get("updated_at")) or _parse_dt(payload["created_at"]),
        )


@dataclass(slots=True)
class ArticleDraft:
    """An article that has not been stored yet."""

    feed_id: int
    title: str
    source_url: str
    published_at: datetime
    content: str = ""
    raw_content: str = ""


@dataclass(slots=True)
class Article:
    """A stored article, unique by ``source_url``."""

    id: int
    feed_id: int
    title: str
    source_url: str
    published_at: datetime
    content: str = ""
    raw_content: str = ""
    synced: bool = False
    artifact_ref: str | None = None
    created_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "feed_id": self.feed_id,
            "title": self.title,
            "content": self.content,
            "raw_content": self.raw_content,
            "source_url": self.source_url,
            "published_at": self.published_at.isoformat(),
            "synced": self.synced,
            "artifact_ref": self.artifact_ref,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "Article":
        return cls(
            id=int(payload["id"]),
            feed_id=int(payload["feed_id"]),
            title=payload.get("title", ""),
            source_url=payload["source_url"],
            published_at=_parse_dt(payload["published_at"]),
            content=payload.get("content", ""),
            raw_content=payload.get("raw_content", ""),
            synced=bool(payload.get("synced", False)),
            artifact_ref=payload.get("artifact_ref"),
            created_at=_parse_dt(payload["created_at"]),
        )
