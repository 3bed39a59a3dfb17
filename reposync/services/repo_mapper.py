"""Contract-safe mapping from GitHub repository payloads to sync metadata."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from dateutil import parser as date_parser


@dataclass(slots=True)
class RepositoryMetadata:
    """Repository attributes kept from `GET /repos/{owner}/{repo}`."""

    description: str | None = None
    topics: list[str] = field(default_factory=list)
    star_count: int = 0
    updated_at: datetime | None = None


def map_repo_payload(repo_payload: dict[str, Any]) -> RepositoryMetadata:
    """Map a GitHub repository payload, tolerating missing or mistyped fields."""

    return RepositoryMetadata(
        description=_pick_text(repo_payload.get("description")),
        topics=_pick_tags(repo_payload.get("topics")),
        star_count=_pick_int(repo_payload.get("stargazers_count")),
        updated_at=_pick_datetime(repo_payload.get("updated_at")),
    )


def _pick_text(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _pick_int(value: Any) -> int:
    if isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return max(value, 0)
    return 0


def _pick_tags(value: Any) -> list[str]:
    if not isinstance(value, (list, tuple)):
        return []
    return [str(tag).strip() for tag in value if str(tag).strip()]


def _pick_datetime(value: Any) -> datetime | None:
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        return date_parser.isoparse(value.strip())
    except (ValueError, OverflowError):
        return None
