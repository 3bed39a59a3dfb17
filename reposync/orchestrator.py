"""Repository metadata sync orchestrator."""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Callable, Sequence

from reposync.config.settings import settings
from reposync.crawlers.client import sanitize_log_extra
from reposync.crawlers.contracts import FetchState
from reposync.services.references import RepositoryReference, discover_references, load_reference_urls
from reposync.services.repo_mapper import RepositoryMetadata, map_repo_payload
from reposync.services.snapshot import RepositoryFetch, build_snapshot, write_snapshot

logger = logging.getLogger(__name__)

NO_REFERENCES_REASON = "No repository references found"


class RepoSyncOrchestrator:
    """Reads the dataset, fetches every referenced repository, writes one snapshot.

    The GitHub client is supplied by the caller and is only read from here.
    Dataset read errors and snapshot write errors propagate; everything that
    can go wrong for a single repository is logged and recorded as absent.
    """

    def __init__(
        self,
        *,
        client: Any,
        source_path: str | Path | None = None,
        output_path: str | Path | None = None,
        reference_field: str | None = None,
        host: str | None = None,
        concurrency: int | None = None,
        preview_max_chars: int | None = None,
        progress: Callable[[str], None] = print,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._client = client
        self._source_path = Path(source_path or settings.SYNC_SOURCE_PATH)
        self._output_path = Path(output_path or settings.SYNC_OUTPUT_PATH)
        self._reference_field = reference_field or settings.SYNC_REFERENCE_FIELD
        self._host = host or settings.GITHUB_HOST
        self._concurrency = max(int(concurrency or settings.GITHUB_CONCURRENCY), 1)
        self._preview_max_chars = preview_max_chars or settings.README_PREVIEW_MAX_CHARS
        self._progress = progress
        self._clock = clock or (lambda: datetime.now(UTC))

    async def run(self) -> dict[str, Any]:
        started_at = self._clock()
        run_stats: dict[str, Any] = {
            "success": True,
            "skipped": False,
            "started_at": started_at.isoformat(),
            "source_path": str(self._source_path),
            "output_path": str(self._output_path),
            "stats": {
                "found": 0,
                "invalid": 0,
                "succeeded": 0,
                "failed": 0,
                "readme_missing": 0,
                "metadata_missing": 0,
            },
        }
        stats = run_stats["stats"]

        urls = load_reference_urls(self._source_path, self._reference_field)
        discovery = discover_references(urls, self._host)
        stats["found"] = discovery.found
        stats["invalid"] = len(discovery.invalid)

        if discovery.found == 0:
            self._progress(f"No repository links found in {self._source_path}; nothing to sync.")
            logger.info("Sync skipped", extra=sanitize_log_extra(source_path=str(self._source_path)))
            run_stats["skipped"] = True
            run_stats["reason"] = NO_REFERENCES_REASON
            run_stats["completed_at"] = self._clock().isoformat()
            return run_stats

        for url in discovery.invalid:
            self._progress(f"Invalid repository URL: {url}")
        self._progress(f"Found {discovery.found} projects with repository links")

        fetches = await self.fetch_all(discovery.references)
        stats["readme_missing"] = sum(1 for fetch in fetches if fetch.readme is None)
        stats["metadata_missing"] = sum(1 for fetch in fetches if fetch.metadata is None)

        snapshot = build_snapshot(fetches, now=self._clock(), preview_max_chars=self._preview_max_chars)
        write_snapshot(snapshot, self._output_path)

        stats["succeeded"] = len(snapshot.projects)
        stats["failed"] = stats["found"] - stats["succeeded"]
        run_stats["completed_at"] = self._clock().isoformat()

        self._progress("")
        self._progress("Summary:")
        self._progress(f"  - Total projects: {stats['found']}")
        self._progress(f"  - Successfully synced: {stats['succeeded']}")
        self._progress(f"  - Failed: {stats['failed']}")
        self._progress(f"Snapshot saved to {self._output_path}")

        logger.info("Sync completed", extra=sanitize_log_extra(**stats))
        return run_stats

    async def fetch_all(self, references: Sequence[RepositoryReference]) -> list[RepositoryFetch]:
        """Fetch all repositories concurrently; results keep the order of `references`."""
        slots: list[RepositoryFetch | None] = [None] * len(references)
        semaphore = asyncio.Semaphore(self._concurrency)

        async def _fetch_slot(index: int, reference: RepositoryReference) -> None:
            async with semaphore:
                fetch = await self.fetch_repository(reference)
            slots[index] = fetch
            self._report_progress(fetch)

        await asyncio.gather(*(_fetch_slot(index, reference) for index, reference in enumerate(references)))
        return [fetch if fetch is not None else RepositoryFetch(reference=ref) for fetch, ref in zip(slots, references)]

    async def fetch_repository(self, reference: RepositoryReference) -> RepositoryFetch:
        """Fetch README and attributes for one repository in parallel. Never raises."""
        readme_result, repo_result = await asyncio.gather(
            self._client.get_readme(reference.owner, reference.name),
            self._client.get_repo(reference.owner, reference.name),
            return_exceptions=True,
        )
        return RepositoryFetch(
            reference=reference,
            readme=self._readme_or_none(reference, readme_result),
            metadata=self._metadata_or_none(reference, repo_result),
        )

    def _readme_or_none(self, reference: RepositoryReference, result: Any) -> str | None:
        if isinstance(result, BaseException):
            self._warn(reference, "README", str(result))
            return None
        if result.state in (FetchState.OK, FetchState.EMPTY):
            return result.data or ""
        self._warn(reference, "README", result.error)
        return None

    def _metadata_or_none(self, reference: RepositoryReference, result: Any) -> RepositoryMetadata | None:
        if isinstance(result, BaseException):
            self._warn(reference, "details", str(result))
            return None
        if result.is_ok and isinstance(result.data, dict):
            return map_repo_payload(result.data)
        self._warn(reference, "details", result.error or "empty repository payload")
        return None

    @staticmethod
    def _warn(reference: RepositoryReference, part: str, error: str | None) -> None:
        logger.warning(
            "Could not fetch %s for %s: %s",
            part,
            reference.key,
            error or "unknown error",
            extra=sanitize_log_extra(repository=reference.key, part=part, error=error),
        )

    def _report_progress(self, fetch: RepositoryFetch) -> None:
        key = fetch.reference.key
        if fetch.readme is not None and fetch.metadata is not None:
            self._progress(f"[ok] {key}: README and details fetched")
        elif fetch.has_data:
            present = "README" if fetch.readme is not None else "details"
            self._progress(f"[partial] {key}: only {present} available")
        else:
            self._progress(f"[failed] {key}: no data available")
