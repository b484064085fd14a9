"""Markdown notes generated from stored articles.

Notes are written to ``<root>/<folder>/<feed title>/<article title>.md``. A
manifest in the folder maps article ids to note paths so notes can be removed
when their articles are pruned.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable, Mapping

from wewe_sync.config import SyncSettings
from wewe_sync.storage.models import Article, Feed

logger = logging.getLogger(__name__)

MANIFEST_NAME = ".wewe-notes.json"

_UNSAFE_FILENAME_CHARS = re.compile(r'[\\/:*?"<>|]')
_TAG_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9\u4e00-\u9fa5\s]")
_TEMPLATE_VAR = re.compile(r"\{\{(\w+)\}\}")


def sanitize_filename(name: str) -> str:
    """Replace characters that are invalid in file names and collapse whitespace."""
    cleaned = _UNSAFE_FILENAME_CHARS.sub("-", name)
    cleaned = " ".join(cleaned.split())
    return cleaned or "untitled"


def feed_tags(feed_title: str) -> list[str]:
    tag = _TAG_UNSAFE_CHARS.sub("", feed_title)
    tag = re.sub(r"\s+", "-", tag.strip()).lower()
    return [t for t in ("wewe-rss", tag) if t]


def render_note(template: str, values: Mapping[str, str]) -> str:
    """Replace ``{{name}}`` placeholders; unknown names are left as-is."""
    return _TEMPLATE_VAR.sub(lambda m: values.get(m.group(1), m.group(0)), template)


@dataclass
class NoteBatchResult:
    """Outcome of writing notes for a batch of articles.

    ``refs`` maps each article id to its note path (relative to the notes
    root), for notes created now and notes that already existed.
    """

    created: int = 0
    skipped: int = 0
    failed: int = 0
    refs: dict[int, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "created": self.created,
            "skipped": self.skipped,
            "failed": self.failed,
        }


class NoteWriter:
    """Creates and deletes Markdown notes for articles."""

    def __init__(self, root: Path, settings: SyncSettings | None = None) -> None:
        self.root = root
        self.settings = settings or SyncSettings()
        self.folder = root / self.settings.notes_folder
        self._manifest_path = self.folder / MANIFEST_NAME

    # Manifest ---------------------------------------------------------

    def _load_manifest(self) -> dict[str, str]:
        if not self._manifest_path.exists():
            return {}
        try:
            data = json.loads(self._manifest_path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise ValueError(f"Note manifest {self._manifest_path} is corrupted: {exc}") from exc
        return dict(data.get("notes", {}))

    def _save_manifest(self, notes: dict[str, str]) -> None:
        self.folder.mkdir(parents=True, exist_ok=True)
        data = {
            "updated_at": datetime.now(timezone.utc).isoformat(),
            "notes": notes,
        }
        tmp_path = self._manifest_path.with_suffix(".tmp")
        tmp_path.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")
        tmp_path.replace(self._manifest_path)

    # Rendering --------------------------------------------------------

    def note_path(self, article: Article, feed: Feed) -> Path:
        return self.folder / sanitize_filename(feed.title) / f"{sanitize_filename(article.title)}.md"

    def _unclaimed_path(
        self,
        article: Article,
        feed: Feed,
        manifest: Mapping[str, str],
        claimed: Mapping[str, str],
    ) -> Path:
        """Return the note path for ``article`` that no other article owns.

        An article keeps the path recorded for it in the manifest. A title
        already used by another article in the same feed gets the article
        id appended.
        """
        key = str(article.id)
        if key in manifest:
            return self.root / manifest[key]
        path = self.note_path(article, feed)
        owner = claimed.get(path.relative_to(self.root).as_posix())
        if owner is not None and owner != key:
            path = path.with_name(f"{path.stem} ({article.id}).md")
        return path

    def render(self, article: Article, feed: Feed) -> str:
        tags = feed_tags(feed.title) if self.settings.add_tags else []
        values = {
            "title": article.title,
            "feedName": feed.title,
            "author": feed.title,
            "url": article.source_url,
            "publishedAt": article.published_at.strftime("%Y-%m-%d %H:%M"),
            "date": datetime.now(timezone.utc).strftime("%Y-%m-%d"),
            "tags": ", ".join(tags),
            "content": article.content,
        }
        return render_note(self.settings.note_template, values)

    # Operations -------------------------------------------------------

    def create_batch(self, articles: Iterable[Article], feeds: Mapping[int, Feed]) -> NoteBatchResult:
        """Write a note per article. A failure affects only that article."""
        result = NoteBatchResult()
        manifest = self._load_manifest()
        claimed = {ref: key for key, ref in manifest.items()}

        for article in articles:
            feed = feeds.get(article.feed_id)
            if feed is None:
                logger.warning("Feed %d not found for article %d", article.feed_id, article.id)
                result.failed += 1
                continue

            path = self._unclaimed_path(article, feed, manifest, claimed)
            ref = path.relative_to(self.root).as_posix()
            try:
                if path.exists():
                    logger.warning("Note already exists: %s", ref)
                    result.skipped += 1
                else:
                    path.parent.mkdir(parents=True, exist_ok=True)
                    path.write_text(self.render(article, feed), encoding="utf-8")
                    logger.info("Created note: %s", ref)
                    result.created += 1
            except OSError as exc:
                logger.error("Failed to create note for article %d: %s", article.id, exc)
                result.failed += 1
                continue

            result.refs[article.id] = ref
            manifest[str(article.id)] = ref
            claimed[ref] = str(article.id)

        if result.refs:
            self._save_manifest(manifest)
        return result

    def delete_by_article_ids(self, article_ids: Iterable[int]) -> int:
        """Delete the notes of the given articles. Returns the number removed."""
        ids = [str(article_id) for article_id in article_ids]
        if not ids:
            return 0
        manifest = self._load_manifest()
        deleted = 0
        changed = False

        for key in ids:
            ref = manifest.get(key)
            if ref is None:
                continue
            path = self.root / ref
            try:
                if path.exists():
                    path.unlink()
                    deleted += 1
                    logger.info("Deleted note: %s", ref)
            except OSError as exc:
                logger.error("Failed to delete note %s: %s", ref, exc)
                continue
            del manifest[key]
            changed = True

        if changed:
            self._save_manifest(manifest)
        return deleted
