"""Resilient async GitHub client for repository README and metadata reads."""

from __future__ import annotations

import asyncio
import base64
import binascii
import logging
import re
import time
from typing import Any, Awaitable, Callable, Optional

import httpx
from tenacity import AsyncRetrying, RetryCallState, retry_if_exception_type, stop_after_attempt

from reposync.config.settings import settings
from reposync.crawlers.contracts import FetchResult, FetchState, ReadmeContract, RepoContract

logger = logging.getLogger(__name__)

_REDACTED_VALUE = "***REDACTED***"
_SENSITIVE_KEYS = ("authorization", "token")
# Error strings from httpx can echo the Authorization header or a GitHub token
_TOKEN_PATTERNS = (
    re.compile(r"(?i)(bearer\s+)[^\s,;]+"),
    re.compile(r"\b(gh[pousr]_)[A-Za-z0-9]{20,}"),
)


def sanitize_for_log(value: Any) -> Any:
    """Return a sanitized copy of a log payload with credentials masked."""

    if isinstance(value, dict):
        return {
            str(field): _REDACTED_VALUE if _is_sensitive(str(field)) else sanitize_for_log(item)
            for field, item in value.items()
        }

    if isinstance(value, (list, tuple)):
        return [sanitize_for_log(item) for item in value]

    if isinstance(value, str):
        redacted = value
        for pattern in _TOKEN_PATTERNS:
            redacted = pattern.sub(rf"\1{_REDACTED_VALUE}", redacted)
        return redacted

    return value


def sanitize_log_extra(**kwargs: Any) -> dict[str, Any]:
    """Helper for `extra=` payloads in structured logging."""

    return sanitize_for_log(kwargs)


def _is_sensitive(field_name: str) -> bool:
    lowered = field_name.lower()
    return any(keyword in lowered for keyword in _SENSITIVE_KEYS)


class _RateLimitRetryableError(Exception):
    """Retryable rate-limit signal for tenacity, carrying the wait to honor."""

    def __init__(self, message: str, wait_seconds: float) -> None:
        super().__init__(message)
        self.wait_seconds = wait_seconds


class _RateLimitExhaustedError(Exception):
    """Rate limit resets too far in the future to wait for."""


def _wait_for_rate_limit(retry_state: RetryCallState) -> float:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    return getattr(exc, "wait_seconds", 0.0)


class GitHubRepoClient:
    """Typed GitHub REST client; every read returns a `FetchResult` and never raises."""

    API_VERSION = "2022-11-28"
    ACCEPT_JSON = "application/vnd.github+json"

    def __init__(
        self,
        *,
        token: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        max_retries: Optional[int] = None,
        backoff_base_seconds: Optional[float] = None,
        backoff_max_seconds: Optional[float] = None,
        rate_limit_buffer_seconds: Optional[int] = None,
        rate_limit_max_wait_seconds: Optional[float] = None,
        base_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ) -> None:
        self._token = token or settings.GITHUB_TOKEN
        self._timeout_seconds = timeout_seconds or settings.GITHUB_TIMEOUT_SECONDS
        self._max_retries = max_retries or settings.GITHUB_MAX_RETRIES
        self._backoff_base_seconds = backoff_base_seconds if backoff_base_seconds is not None else settings.GITHUB_BACKOFF_BASE_SECONDS
        self._backoff_max_seconds = backoff_max_seconds or settings.GITHUB_BACKOFF_MAX_SECONDS
        self._rate_limit_buffer_seconds = (
            rate_limit_buffer_seconds if rate_limit_buffer_seconds is not None else settings.GITHUB_RATE_LIMIT_BUFFER_SECONDS
        )
        self._rate_limit_max_wait_seconds = (
            rate_limit_max_wait_seconds
            if rate_limit_max_wait_seconds is not None
            else settings.GITHUB_RATE_LIMIT_MAX_WAIT_SECONDS
        )
        self._base_url = base_url or settings.GITHUB_API_BASE_URL
        self._transport = transport
        self._sleep = sleep or asyncio.sleep
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def authenticated(self) -> bool:
        return bool(self._token)

    async def __aenter__(self) -> "GitHubRepoClient":
        await self._ensure_client()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def get_repo(self, owner: str, repo: str) -> RepoContract:
        response = await self._request(f"/repos/{owner}/{repo}")
        if response.state != FetchState.OK:
            return response

        if not isinstance(response.data, dict):
            return FetchResult(
                state=FetchState.FAILED,
                error="Unexpected repository payload shape",
                status_code=response.status_code,
            )
        return response

    async def get_readme(self, owner: str, repo: str) -> ReadmeContract:
        """Fetch the default README and decode its base64 transport encoding."""

        response = await self._request(f"/repos/{owner}/{repo}/readme")
        if response.state != FetchState.OK:
            return FetchResult(
                state=response.state,
                data=None,
                status_code=response.status_code,
                error=response.error,
            )

        payload = response.data if isinstance(response.data, dict) else {}
        encoded = payload.get("content") if isinstance(payload.get("content"), str) else ""
        encoding = payload.get("encoding") if isinstance(payload.get("encoding"), str) else ""

        if not encoded:
            return FetchResult(state=FetchState.EMPTY, data="", status_code=response.status_code)

        if encoding == "base64":
            try:
                decoded = base64.b64decode(encoded).decode("utf-8", errors="replace")
            except (binascii.Error, ValueError) as exc:
                return FetchResult(
                    state=FetchState.FAILED,
                    error=f"Failed to decode base64 content: {exc}",
                    status_code=response.status_code,
                )
        else:
            decoded = encoded

        return FetchResult(state=FetchState.OK, data=decoded, status_code=response.status_code)

    async def _request(self, path: str, *, params: Optional[dict[str, Any]] = None) -> FetchResult[Any]:
        client = await self._ensure_client()
        # total rate-limit wait for this request across all attempts
        waited = 0.0

        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self._max_retries),
                wait=_wait_for_rate_limit,
                retry=retry_if_exception_type(_RateLimitRetryableError),
                sleep=self._sleep,
                reraise=True,
            ):
                with attempt:
                    response = await client.get(path, params=params)

                    if self._is_rate_limited(response):
                        wait_seconds = self._compute_rate_limit_wait(
                            response.headers,
                            attempt.retry_state.attempt_number,
                        )
                        logger.warning(
                            "GitHub API rate limit encountered",
                            extra=sanitize_log_extra(
                                path=path,
                                status_code=response.status_code,
                                retry_after_seconds=wait_seconds,
                                waited_seconds=waited,
                            ),
                        )
                        if waited + wait_seconds > self._rate_limit_max_wait_seconds:
                            raise _RateLimitExhaustedError(
                                f"GitHub rate limit exhausted ({response.status_code}), resets in {wait_seconds:.0f}s"
                            )
                        waited += wait_seconds
                        raise _RateLimitRetryableError(
                            f"GitHub rate limit encountered ({response.status_code})",
                            wait_seconds,
                        )

                    response.raise_for_status()
                    return FetchResult(
                        state=FetchState.OK,
                        data=response.json(),
                        status_code=response.status_code,
                    )
        except (_RateLimitRetryableError, _RateLimitExhaustedError) as exc:
            logger.warning(
                "GitHub request failed after rate-limit retries",
                extra=sanitize_log_extra(path=path, error=str(exc), status_code=429),
            )
            return FetchResult(state=FetchState.FAILED, error=str(exc), status_code=429)
        except httpx.HTTPError as exc:
            status_code = getattr(getattr(exc, "response", None), "status_code", None)
            logger.warning(
                "GitHub request failed",
                extra=sanitize_log_extra(path=path, error=str(exc), status_code=status_code),
            )
            return FetchResult(
                state=FetchState.FAILED,
                error=_describe_http_error(exc),
                status_code=status_code,
            )
        except ValueError as exc:
            # response.json() on a non-JSON body
            logger.warning(
                "GitHub response was not valid JSON",
                extra=sanitize_log_extra(path=path, error=str(exc)),
            )
            return FetchResult(state=FetchState.FAILED, error=f"Invalid JSON response: {exc}")

        return FetchResult(state=FetchState.FAILED, error="Unknown GitHub request failure")

    async def _ensure_client(self) -> httpx.AsyncClient:
        if self._client:
            return self._client

        headers = {
            "Accept": self.ACCEPT_JSON,
            "User-Agent": settings.USER_AGENT,
            "X-GitHub-Api-Version": self.API_VERSION,
        }
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"

        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers=headers,
            timeout=self._timeout_seconds,
            transport=self._transport,
        )
        return self._client

    @staticmethod
    def _is_rate_limited(response: httpx.Response) -> bool:
        if response.status_code == 429:
            return True
        if response.status_code != 403:
            return False
        return response.headers.get("x-ratelimit-remaining") == "0" or "retry-after" in response.headers

    def _compute_rate_limit_wait(self, headers: httpx.Headers, attempt_number: int = 1) -> float:
        retry_after = headers.get("retry-after")
        if retry_after is not None:
            try:
                return max(float(retry_after), 0.0)
            except ValueError:
                pass

        reset_raw = headers.get("x-ratelimit-reset")
        if reset_raw is not None:
            try:
                reset_epoch = int(reset_raw)
                wait_seconds = reset_epoch - int(time.time()) + self._rate_limit_buffer_seconds
                return float(max(wait_seconds, 0))
            except ValueError:
                pass

        return min(self._backoff_base_seconds * 2 ** (attempt_number - 1), self._backoff_max_seconds)


def _describe_http_error(exc: httpx.HTTPError) -> str:
    if isinstance(exc, httpx.HTTPStatusError):
        return f"HTTP {exc.response.status_code} for {exc.request.url.path}"
    if isinstance(exc, httpx.TimeoutException):
        return f"Request timed out: {exc.__class__.__name__}"
    return str(exc) or exc.__class__.__name__
