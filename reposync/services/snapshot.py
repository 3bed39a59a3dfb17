"""Sync snapshot assembly and persistence."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Sequence

from dateutil import parser as date_parser

from reposync.errors import SnapshotFormatError, SnapshotWriteError
from reposync.services.readme_summary import DEFAULT_PREVIEW_MAX_CHARS, extract_readme_preview
from reposync.services.references import RepositoryReference
from reposync.services.repo_mapper import RepositoryMetadata

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class RepositoryFetch:
    """Outcome of fetching one repository; `None` marks an absent part."""

    reference: RepositoryReference
    readme: str | None = None
    metadata: RepositoryMetadata | None = None

    @property
    def has_data(self) -> bool:
        return self.readme is not None or self.metadata is not None


@dataclass(slots=True)
class SyncRecord:
    repo: str
    description: str | None
    topics: list[str]
    stars: int
    readme_preview: str | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "repo": self.repo,
            "description": self.description,
            "topics": list(self.topics),
            "stars": self.stars,
            "readmePreview": self.readme_preview,
        }


@dataclass(slots=True)
class SyncSnapshot:
    last_sync: datetime
    projects: list[SyncRecord] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "lastSync": format_timestamp(self.last_sync),
            "projects": [record.to_dict() for record in self.projects],
        }


def format_timestamp(value: datetime) -> str:
    """UTC ISO-8601 with millisecond precision and a `Z` suffix."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def build_record(fetch: RepositoryFetch, *, preview_max_chars: int = DEFAULT_PREVIEW_MAX_CHARS) -> SyncRecord:
    metadata = fetch.metadata
    return SyncRecord(
        repo=fetch.reference.key,
        description=metadata.description if metadata else None,
        topics=list(metadata.topics) if metadata else [],
        stars=metadata.star_count if metadata else 0,
        readme_preview=extract_readme_preview(fetch.readme, preview_max_chars),
    )


def build_snapshot(
    fetches: Sequence[RepositoryFetch],
    *,
    now: datetime | None = None,
    preview_max_chars: int = DEFAULT_PREVIEW_MAX_CHARS,
) -> SyncSnapshot:
    """Map fetches to records in order, dropping repositories with no data at all."""
    records = [
        build_record(fetch, preview_max_chars=preview_max_chars)
        for fetch in fetches
        if fetch.has_data
    ]
    return SyncSnapshot(last_sync=now or datetime.now(UTC), projects=records)


def write_snapshot(snapshot: SyncSnapshot, path: str | Path) -> Path:
    """Write the snapshot as indented JSON, replacing any previous file whole.

    The document goes to a sibling temporary file first and is moved into
    place with `os.replace`, so readers never see a partial snapshot.
    """
    destination = Path(path)
    temporary = destination.with_name(f"{destination.name}.tmp")
    try:
        destination.parent.mkdir(parents=True, exist_ok=True)
        with open(temporary, "w", encoding="utf-8") as handle:
            json.dump(snapshot.to_dict(), handle, ensure_ascii=False, indent=2)
            handle.write("\n")
        os.replace(temporary, destination)
    except OSError as exc:
        _discard(temporary)
        raise SnapshotWriteError(f"Cannot write snapshot to {destination}: {exc}") from exc

    logger.info("Snapshot written", extra={"path": str(destination), "projects": len(snapshot.projects)})
    return destination


def load_snapshot(path: str | Path) -> SyncSnapshot:
    """Read a snapshot back. A missing file raises `FileNotFoundError` unchanged."""
    source = Path(path)
    with open(source, encoding="utf-8") as handle:
        try:
            payload = json.load(handle)
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise SnapshotFormatError(f"Snapshot {source} is not valid JSON: {exc}") from exc

    if not isinstance(payload, dict) or not isinstance(payload.get("projects"), list):
        raise SnapshotFormatError(f"Snapshot {source} has no projects list")

    try:
        last_sync = date_parser.isoparse(str(payload.get("lastSync")))
    except (ValueError, OverflowError) as exc:
        raise SnapshotFormatError(f"Snapshot {source} has an invalid lastSync: {exc}") from exc

    records: list[SyncRecord] = []
    for entry in payload["projects"]:
        if not isinstance(entry, dict) or not isinstance(entry.get("repo"), str):
            raise SnapshotFormatError(f"Snapshot {source} contains a malformed project entry")
        topics = entry.get("topics")
        if topics is None:
            topics = []
        if not isinstance(topics, list):
            raise SnapshotFormatError(f"Snapshot {source} has non-list topics for {entry['repo']}")
        for key in ("description", "readmePreview"):
            if not isinstance(entry.get(key), (str, type(None))):
                raise SnapshotFormatError(f"Snapshot {source} has a non-text {key} for {entry['repo']}")
        stars = entry.get("stars")
        records.append(
            SyncRecord(
                repo=entry["repo"],
                description=entry.get("description"),
                topics=[str(topic) for topic in topics],
                stars=stars if isinstance(stars, int) and not isinstance(stars, bool) else 0,
                readme_preview=entry.get("readmePreview"),
            )
        )
    return SyncSnapshot(last_sync=last_sync, projects=records)


def _discard(path: Path) -> None:
    try:
        path.unlink(missing_ok=True)
    except OSError:
        logger.warning("Could not remove temporary snapshot file", extra={"path": str(path)})
