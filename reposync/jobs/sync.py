"""Sync and report job entrypoints."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable

from reposync.config.settings import settings
from reposync.crawlers.client import GitHubRepoClient
from reposync.orchestrator import RepoSyncOrchestrator
from reposync.services.advisor import run_report

logger = logging.getLogger(__name__)


async def run_sync(
    *,
    source_path: str | Path | None = None,
    output_path: str | Path | None = None,
    client_factory: Callable[[], Any] = GitHubRepoClient,
    progress: Callable[[str], None] = print,
) -> dict[str, Any]:
    """Open one GitHub client for the run and hand it to the orchestrator."""
    async with client_factory() as client:
        if not client.authenticated:
            logger.warning("GITHUB_TOKEN is not set; requests use the unauthenticated rate limit of 60 per hour")
        orchestrator = RepoSyncOrchestrator(
            client=client,
            source_path=source_path,
            output_path=output_path,
            progress=progress,
        )
        return await orchestrator.run()


def run_sync_report(
    *,
    snapshot_path: str | Path | None = None,
    source_path: str | Path | None = None,
    output: Callable[[str], None] = print,
) -> int:
    return run_report(
        snapshot_path or settings.SYNC_OUTPUT_PATH,
        source_path or settings.SYNC_SOURCE_PATH,
        field_name=settings.SYNC_REFERENCE_FIELD,
        host=settings.GITHUB_HOST,
        output=output,
    )
