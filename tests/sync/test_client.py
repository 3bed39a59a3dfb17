from __future__ import annotations

import base64
import time
from typing import Callable

import httpx
import pytest

from reposync.config.settings import settings
from reposync.crawlers.client import GitHubRepoClient, sanitize_for_log, sanitize_log_extra
from reposync.crawlers.contracts import FetchState

README_TEXT = "# Widget\n\nA tiny widget library.\n"


def _encoded(text: str) -> str:
    raw = base64.b64encode(text.encode("utf-8")).decode("ascii")
    # GitHub wraps base64 content at 60 characters
    return "\n".join(raw[index:index + 60] for index in range(0, len(raw), 60))


def _client(handler: Callable[[httpx.Request], httpx.Response], **kwargs) -> GitHubRepoClient:
    options = {
        "token": "test-token",
        "base_url": "https://api.github.test",
        "max_retries": 2,
        "backoff_base_seconds": 0,
        "rate_limit_max_wait_seconds": 5,
    }
    options.update(kwargs)
    return GitHubRepoClient(transport=httpx.MockTransport(handler), **options)


@pytest.mark.asyncio
async def test_get_readme_decodes_base64_content() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"content": _encoded(README_TEXT), "encoding": "base64"})

    async with _client(handler) as client:
        result = await client.get_readme("acme", "widget")

    assert result.state == FetchState.OK
    assert result.data == README_TEXT
    assert seen[0].url.path == "/repos/acme/widget/readme"
    assert seen[0].headers["Authorization"] == "Bearer test-token"
    assert seen[0].headers["X-GitHub-Api-Version"] == GitHubRepoClient.API_VERSION


@pytest.mark.asyncio
async def test_get_readme_missing_returns_failed_result() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, json={"message": "Not Found"})

    async with _client(handler) as client:
        result = await client.get_readme("acme", "widget")

    assert result.is_failed
    assert result.status_code == 404
    assert result.data is None
    assert "404" in (result.error or "")


@pytest.mark.asyncio
async def test_get_readme_rejects_undecodable_content() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"content": "abc", "encoding": "base64"})

    async with _client(handler) as client:
        result = await client.get_readme("acme", "widget")

    assert result.is_failed
    assert "decode" in (result.error or "")


@pytest.mark.asyncio
async def test_get_readme_without_content_is_empty() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"content": "", "encoding": "base64"})

    async with _client(handler) as client:
        result = await client.get_readme("acme", "widget")

    assert result.state == FetchState.EMPTY
    assert result.data == ""


@pytest.mark.asyncio
async def test_get_repo_returns_payload() -> None:
    payload = {
        "description": "Widgets",
        "topics": ["tools"],
        "stargazers_count": 42,
        "updated_at": "2024-01-01T00:00:00Z",
    }

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/repos/acme/widget"
        return httpx.Response(200, json=payload)

    async with _client(handler) as client:
        result = await client.get_repo("acme", "widget")

    assert result.is_ok
    assert result.data == payload


@pytest.mark.asyncio
async def test_get_repo_with_non_json_body_fails_softly() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>maintenance</html>")

    async with _client(handler) as client:
        result = await client.get_repo("acme", "widget")

    assert result.is_failed


@pytest.mark.asyncio
async def test_timeout_is_reported_as_failed_result() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    async with _client(handler) as client:
        result = await client.get_repo("acme", "widget")

    assert result.is_failed
    assert "timed out" in (result.error or "").lower()


@pytest.mark.asyncio
async def test_rate_limit_is_retried_then_succeeds() -> None:
    calls = {"count": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["count"] += 1
        if calls["count"] == 1:
            return httpx.Response(429, headers={"retry-after": "0"})
        return httpx.Response(200, json={"description": "ok"})

    async with _client(handler) as client:
        result = await client.get_repo("acme", "widget")

    assert calls["count"] == 2
    assert result.is_ok


@pytest.mark.asyncio
async def test_rate_limit_retries_are_bounded() -> None:
    calls = {"count": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["count"] += 1
        return httpx.Response(403, headers={"x-ratelimit-remaining": "0", "retry-after": "0"})

    async with _client(handler, max_retries=3) as client:
        result = await client.get_repo("acme", "widget")

    assert calls["count"] == 3
    assert result.is_failed
    assert result.status_code == 429


@pytest.mark.asyncio
async def test_rate_limit_reset_far_away_fails_without_waiting() -> None:
    calls = {"count": 0}
    reset_at = str(int(time.time()) + 3600)

    def handler(request: httpx.Request) -> httpx.Response:
        calls["count"] += 1
        return httpx.Response(403, headers={"x-ratelimit-remaining": "0", "x-ratelimit-reset": reset_at})

    async with _client(handler) as client:
        result = await client.get_readme("acme", "widget")

    assert calls["count"] == 1
    assert result.is_failed
    assert "exhausted" in (result.error or "")


@pytest.mark.asyncio
async def test_plain_forbidden_is_not_retried() -> None:
    calls = {"count": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["count"] += 1
        return httpx.Response(403, json={"message": "Forbidden"})

    async with _client(handler) as client:
        result = await client.get_repo("acme", "widget")

    assert calls["count"] == 1
    assert result.status_code == 403


@pytest.mark.asyncio
async def test_missing_token_sends_unauthenticated_requests(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings, "GITHUB_TOKEN", None)
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"description": None})

    async with _client(handler, token=None) as client:
        assert client.authenticated is False
        await client.get_repo("acme", "widget")

    assert "Authorization" not in seen[0].headers


@pytest.mark.asyncio
async def test_rate_limit_wait_is_capped_across_attempts() -> None:
    calls = {"count": 0}
    sleeps: list[float] = []

    async def record_sleep(seconds: float) -> None:
        sleeps.append(seconds)

    def handler(request: httpx.Request) -> httpx.Response:
        calls["count"] += 1
        return httpx.Response(429, headers={"retry-after": "2"})

    async with _client(handler, max_retries=3, rate_limit_max_wait_seconds=3, sleep=record_sleep) as client:
        result = await client.get_repo("acme", "widget")

    # one 2s wait fits the 3s budget, a second one would not
    assert sleeps == [2.0]
    assert calls["count"] == 2
    assert result.is_failed
    assert "exhausted" in (result.error or "")


@pytest.mark.asyncio
async def test_rate_limit_without_headers_backs_off_exponentially() -> None:
    sleeps: list[float] = []

    async def record_sleep(seconds: float) -> None:
        sleeps.append(seconds)

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(429)

    async with _client(
        handler,
        max_retries=3,
        backoff_base_seconds=1,
        backoff_max_seconds=10,
        rate_limit_max_wait_seconds=60,
        sleep=record_sleep,
    ) as client:
        result = await client.get_readme("acme", "widget")

    assert sleeps == [1.0, 2.0]
    assert result.status_code == 429


def test_sanitize_for_log_redacts_credentials() -> None:
    sanitized = sanitize_for_log(
        {
            "Authorization": "Bearer abc",
            "error": "401 Unauthorized for Bearer abc123",
            "nested": ["Bearer xyz"],
            "path": "/repos/acme/widget",
        }
    )

    assert sanitized["Authorization"] == "***REDACTED***"
    assert "abc123" not in sanitized["error"]
    assert sanitized["nested"] == ["Bearer ***REDACTED***"]
    assert sanitized["path"] == "/repos/acme/widget"


def test_sanitize_log_extra_redacts_github_tokens() -> None:
    extra = sanitize_log_extra(error="bad credentials ghp_" + "a" * 36)

    assert "aaaa" not in extra["error"]


def test_sanitize_log_extra_masks_sensitive_keys() -> None:
    extra = sanitize_log_extra(token="secret-value", path="/repos/acme/widget")

    assert extra == {"token": "***REDACTED***", "path": "/repos/acme/widget"}
