"""Plain-text README preview extraction."""

from __future__ import annotations

DEFAULT_PREVIEW_MAX_CHARS = 500


def extract_readme_preview(readme: str | None, max_chars: int = DEFAULT_PREVIEW_MAX_CHARS) -> str | None:
    """Return the first body paragraph of a README, cut to `max_chars`.

    Leading blank and `#` heading lines are skipped; the paragraph ends at
    the first blank line after body text. `None` means there was no README,
    while a README without body text yields an empty string.
    """
    if readme is None:
        return None

    collected: list[str] = []
    found_content = False

    for line in readme.split("\n"):
        trimmed = line.strip()

        if not found_content and (not trimmed or trimmed.startswith("#")):
            continue

        found_content = True
        if not trimmed:
            break
        collected.append(trimmed)

    return " ".join(part for part in collected if part)[:max_chars]
