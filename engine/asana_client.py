"""Asana REST client: authenticated, rate-limited GETs with bounded retry."""

import logging
from dataclasses import dataclass, field
from typing import Any

import requests

from lake import config
from lake.collectors.resilience import RateLimiter, RetryConfig, retry_with_backoff

logger = logging.getLogger(__name__)

ASANA_API_BASE = config.ASANA_API_BASE


class AsanaApiError(Exception):
    """Non-2xx response or transport failure that survived retries."""

    def __init__(self, message: str, status_code: int | None = None, url: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.url = url


class RetryableApiError(AsanaApiError):
    """Timeout, connection reset, 429 or 5xx. Retried by the client."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        url: str = "",
        retry_after: float | None = None,
    ):
        super().__init__(message, status_code, url)
        self.retry_after = retry_after


class MalformedResponseError(Exception):
    """Response body is not the JSON shape the Asana API promises."""


@dataclass
class AsanaPage:
    """One page of a list endpoint. next_offset is "" on the last page."""

    data: list[dict] = field(default_factory=list)
    next_offset: str = ""
    url: str = ""


def _retry_after_seconds(resp: requests.Response) -> float | None:
    value = resp.headers.get("Retry-After")
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        return None


class AsanaClient:
    """GET-only client for the Asana API, one per connection."""

    def __init__(
        self,
        token: str,
        base_url: str = ASANA_API_BASE,
        timeout: float = config.HTTP_TIMEOUT_SECONDS,
        retry_config: RetryConfig | None = None,
        rate_limiter: RateLimiter | None = None,
        session: requests.Session | None = None,
    ):
        if not token:
            raise ValueError("No Asana token provided")
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.retry_config = retry_config or RetryConfig(
            max_retries=config.MAX_RETRIES,
            base_delay=config.RETRY_BASE_DELAY,
            retry_on=(RetryableApiError,),
        )
        self.rate_limiter = rate_limiter or RateLimiter(config.REQUESTS_PER_MINUTE)
        self.session = session or requests.Session()
        self.session.headers.update(
            {
                "Authorization": f"Bearer {token}",
                "Accept": "application/json",
            }
        )

    @classmethod
    def for_connection(cls, connection_id: int, sources_path=None) -> "AsanaClient":
        """Build a client from the connection's entry in sources.yaml."""
        conn = config.get_connection_config(connection_id, sources_path)
        return cls(
            conn.token,
            base_url=conn.endpoint,
            rate_limiter=RateLimiter(conn.rate_limit_per_minute),
        )

    def url_for(self, endpoint: str, params: dict | None = None) -> str:
        url = f"{self.base_url}/{endpoint.lstrip('/')}"
        return requests.Request("GET", url, params=params).prepare().url

    def _get_once(self, endpoint: str, params: dict | None) -> dict[str, Any]:
        url = f"{self.base_url}/{endpoint.lstrip('/')}"
        self.rate_limiter.acquire()
        try:
            resp = self.session.get(url, params=params, timeout=self.timeout)
        except (requests.Timeout, requests.ConnectionError) as e:
            raise RetryableApiError(f"Asana request failed: {e}", url=url) from e
        except requests.RequestException as e:
            raise AsanaApiError(f"Asana request failed: {e}", url=url) from e

        if resp.status_code == 429:
            raise RetryableApiError(
                "Asana rate limit exceeded",
                status_code=429,
                url=url,
                retry_after=_retry_after_seconds(resp),
            )
        if resp.status_code >= 500:
            raise RetryableApiError(
                f"Asana API error: {resp.status_code} {resp.text[:200]}",
                status_code=resp.status_code,
                url=url,
            )
        if not 200 <= resp.status_code < 300:
            raise AsanaApiError(
                f"Asana API error: {resp.status_code} {resp.text[:200]}",
                status_code=resp.status_code,
                url=url,
            )

        try:
            body = resp.json()
        except ValueError as e:
            raise MalformedResponseError(f"Non-JSON response from {url}: {e}") from e
        if not isinstance(body, dict):
            raise MalformedResponseError(f"Expected a JSON object from {url}, got {type(body).__name__}")
        return body

    def get_json(self, endpoint: str, params: dict | None = None) -> dict[str, Any]:
        """GET with retry on transient failures. Returns the decoded body."""
        return retry_with_backoff(
            lambda: self._get_once(endpoint, params), self.retry_config, logger
        )

    def get_page(self, endpoint: str, params: dict | None = None) -> AsanaPage:
        """
        GET one page of a list endpoint.

        Expects ``{data: [...], next_page: {offset, path, uri} | null}``.
        """
        body = self.get_json(endpoint, params)
        data = body.get("data")
        if not isinstance(data, list):
            raise MalformedResponseError(f"{endpoint}: 'data' is not a list")
        if not all(isinstance(item, dict) for item in data):
            raise MalformedResponseError(f"{endpoint}: 'data' holds non-object elements")

        next_page = body.get("next_page")
        if next_page is None:
            next_offset = ""
        elif isinstance(next_page, dict):
            next_offset = next_page.get("offset") or ""
            if not isinstance(next_offset, str):
                raise MalformedResponseError(f"{endpoint}: next_page.offset is not a string")
        else:
            raise MalformedResponseError(f"{endpoint}: 'next_page' is not an object")

        return AsanaPage(data=data, next_offset=next_offset, url=self.url_for(endpoint, params))

    def get_object(self, endpoint: str, params: dict | None = None) -> dict[str, Any]:
        """GET a single resource. Returns its ``data`` object ({} when empty)."""
        body = self.get_json(endpoint, params)
        data = body.get("data")
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise MalformedResponseError(f"{endpoint}: 'data' is not an object")
        return data

    def me(self) -> dict[str, Any]:
        """The authenticated user. Used to check a connection."""
        return self.get_object("users/me", {"opt_fields": "gid,name,email"})
