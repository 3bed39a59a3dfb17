"""Repository reference discovery over the project dataset."""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Sequence

from reposync.errors import SourceDatasetError

logger = logging.getLogger(__name__)

DEFAULT_HOST = "github.com"
DEFAULT_FIELD = "github"


@dataclass(frozen=True, slots=True)
class RepositoryReference:
    """A parsed (owner, name) pair identifying a hosted repository."""

    owner: str
    name: str
    url: str = field(default="", compare=False)

    @property
    def key(self) -> str:
        return f"{self.owner}/{self.name}"


@dataclass(slots=True)
class ReferenceDiscovery:
    """Parsed references plus the raw URLs that could not be parsed."""

    references: list[RepositoryReference]
    invalid: list[str]

    @property
    def found(self) -> int:
        return len(self.references) + len(self.invalid)


def parse_repository_url(url: str | None, host: str = DEFAULT_HOST) -> RepositoryReference | None:
    """Take the first two path segments after `host/` as owner and name."""
    if not url:
        return None

    marker = f"{host}/"
    index = url.find(marker)
    if index < 0:
        return None

    segments = url[index + len(marker):].split("/")
    if len(segments) < 2:
        return None

    owner, name = segments[0].strip(), segments[1].strip()
    if not owner or not name:
        return None
    return RepositoryReference(owner=owner, name=name, url=url)


def extract_reference_urls(text: str, field_name: str = DEFAULT_FIELD) -> list[str]:
    """Scan `field: "url"` occurrences in textual order, keeping duplicates."""
    pattern = re.compile(rf"\b{re.escape(field_name)}\s*:\s*\"([^\"]+)\"")
    return [match.group(1) for match in pattern.finditer(text)]


def reference_urls_from_records(records: Iterable[Any], field_name: str = DEFAULT_FIELD) -> list[str]:
    urls: list[str] = []
    for record in records:
        if not isinstance(record, dict):
            continue
        value = record.get(field_name)
        if isinstance(value, str) and value.strip():
            urls.append(value.strip())
    return urls


def load_project_records(path: str | Path) -> list[dict[str, Any]]:
    """Load project records from a JSON dataset.

    Accepts either a top-level list of records or an object with a
    `projects` list. Raises `SourceDatasetError` if the file cannot be read
    or does not have one of those shapes.
    """
    source = Path(path)
    try:
        payload = json.loads(source.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError) as exc:
        raise SourceDatasetError(f"Cannot read project dataset {source}: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise SourceDatasetError(f"Project dataset {source} is not valid JSON: {exc}") from exc

    if isinstance(payload, dict):
        payload = payload.get("projects")
    if not isinstance(payload, list):
        raise SourceDatasetError(f"Project dataset {source} must contain a list of projects")
    return [record for record in payload if isinstance(record, dict)]


def load_reference_urls(path: str | Path, field_name: str = DEFAULT_FIELD) -> list[str]:
    """Read the dataset and return its repository URLs in discovery order.

    JSON datasets are read structurally. Other files (for example a
    TypeScript data module) fall back to the `field: "url"` text scan.
    """
    source = Path(path)
    if source.suffix.lower() == ".json":
        return reference_urls_from_records(load_project_records(source), field_name)

    try:
        text = source.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise SourceDatasetError(f"Cannot read project dataset {source}: {exc}") from exc
    return extract_reference_urls(text, field_name)


def discover_references(urls: Sequence[str], host: str = DEFAULT_HOST) -> ReferenceDiscovery:
    references: list[RepositoryReference] = []
    invalid: list[str] = []
    for url in urls:
        reference = parse_repository_url(url, host)
        if reference is None:
            logger.warning("Skipping invalid repository URL: %s", url, extra={"url": url})
            invalid.append(url)
            continue
        references.append(reference)
    return ReferenceDiscovery(references=references, invalid=invalid)
