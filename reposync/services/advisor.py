"""Advisory report comparing a sync snapshot with the project dataset."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable, Sequence

from reposync.errors import RepoSyncError
from reposync.services.references import (
    DEFAULT_FIELD,
    DEFAULT_HOST,
    extract_reference_urls,
    load_project_records,
    parse_repository_url,
)
from reposync.services.snapshot import SyncSnapshot, load_snapshot

logger = logging.getLogger(__name__)

RECOMMENDATIONS = (
    "Recommendations:",
    "1. Re-run sync first (`reposync-sync`) to fetch the latest README content",
    "2. Review the sync snapshot for updated descriptions",
    "3. Update the project dataset with comprehensive information",
    "4. Include specific features from the README in the fullDescription field",
    "5. Add relevant tags based on repository topics",
)

MISSING_SNAPSHOT_GUIDANCE = "No sync snapshot found at {path}. Re-run sync first (`reposync-sync`) to generate it."


def load_dataset_index(
    path: str | Path,
    *,
    field_name: str = DEFAULT_FIELD,
    host: str = DEFAULT_HOST,
) -> tuple[list[str], dict[str, dict[str, Any]]]:
    """Return dataset repository keys in order and the record for each key.

    Non-JSON datasets only yield keys; their records are not parsed.
    """
    source = Path(path)
    records_by_key: dict[str, dict[str, Any]] = {}
    if source.suffix.lower() == ".json":
        records = load_project_records(source)
        pairs = [(record.get(field_name), record) for record in records]
    else:
        try:
            text = source.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise RepoSyncError(f"Cannot read project dataset {source}: {exc}") from exc
        pairs = [(url, {}) for url in extract_reference_urls(text, field_name)]

    keys: list[str] = []
    for url, record in pairs:
        reference = parse_repository_url(url if isinstance(url, str) else None, host)
        if reference is None:
            continue
        keys.append(reference.key)
        records_by_key.setdefault(reference.key, record)
    return keys, records_by_key


def build_report(
    snapshot: SyncSnapshot,
    *,
    dataset_keys: Sequence[str] = (),
    dataset_records: dict[str, dict[str, Any]] | None = None,
) -> list[str]:
    records = dataset_records or {}
    lines = [
        f"Last sync: {snapshot.last_sync.isoformat()}",
        f"Projects synced: {len(snapshot.projects)}",
    ]

    for project in snapshot.projects:
        lines.append("")
        lines.append(project.repo)
        lines.append(f"   Description: {project.description}")
        lines.append(f"   README Preview: {project.readme_preview}")
        lines.append(f"   Stars: {project.stars}")
        lines.append(f"   Topics: {', '.join(project.topics) or 'none'}")

        if project.description == project.readme_preview:
            lines.append("   [!] Description and README preview are identical")
            lines.append("   Consider fetching the full README for more detail")
        else:
            lines.append("   [ok] Has distinct description and README content")

        record = records.get(project.repo)
        if record:
            lines.extend(_dataset_drift(project.description, project.topics, record))

    synced = {project.repo for project in snapshot.projects}
    missing = [key for key in dict.fromkeys(dataset_keys) if key not in synced]
    if missing:
        lines.append("")
        lines.append("Dataset repositories missing from the snapshot:")
        lines.extend(f"   - {key}" for key in missing)

    lines.append("")
    lines.extend(RECOMMENDATIONS)
    return lines


def _dataset_drift(description: str | None, topics: Sequence[str], record: dict[str, Any]) -> list[str]:
    lines: list[str] = []
    dataset_description = record.get("description")
    if description and isinstance(dataset_description, str) and dataset_description.strip() != description:
        lines.append(f"   Dataset description differs: {dataset_description.strip()}")

    tags = record.get("tags") if isinstance(record.get("tags"), list) else []
    known = {str(tag).strip().lower() for tag in tags}
    new_topics = [topic for topic in topics if topic.lower() not in known]
    if new_topics:
        lines.append(f"   Topics not in dataset tags: {', '.join(new_topics)}")
    return lines


def run_report(
    snapshot_path: str | Path,
    source_path: str | Path,
    *,
    field_name: str = DEFAULT_FIELD,
    host: str = DEFAULT_HOST,
    output: Callable[[str], None] = print,
) -> int:
    """Print the advisory report; returns the process exit code."""
    try:
        snapshot = load_snapshot(snapshot_path)
    except FileNotFoundError:
        output(MISSING_SNAPSHOT_GUIDANCE.format(path=snapshot_path))
        return 0
    except (RepoSyncError, OSError) as exc:
        logger.error("Cannot load sync snapshot", exc_info=True)
        output(f"Error: {exc}")
        return 1

    try:
        dataset_keys, dataset_records = load_dataset_index(source_path, field_name=field_name, host=host)
    except RepoSyncError as exc:
        logger.error("Cannot load project dataset", exc_info=True)
        output(f"Error: {exc}")
        return 1

    for line in build_report(snapshot, dataset_keys=dataset_keys, dataset_records=dataset_records):
        output(line)
    return 0
