"""Sync service helpers."""

from reposync.services.readme_summary import extract_readme_preview
from reposync.services.references import (
    ReferenceDiscovery,
    RepositoryReference,
    discover_references,
    load_reference_urls,
    parse_repository_url,
)
from reposync.services.repo_mapper import RepositoryMetadata, map_repo_payload
from reposync.services.snapshot import (
    RepositoryFetch,
    SyncRecord,
    SyncSnapshot,
    build_snapshot,
    load_snapshot,
    write_snapshot,
)

__all__ = [
    "extract_readme_preview",
    "ReferenceDiscovery",
    "RepositoryReference",
    "discover_references",
    "load_reference_urls",
    "parse_repository_url",
    "RepositoryMetadata",
    "map_repo_payload",
    "RepositoryFetch",
    "SyncRecord",
    "SyncSnapshot",
    "build_snapshot",
    "load_snapshot",
    "write_snapshot",
]
