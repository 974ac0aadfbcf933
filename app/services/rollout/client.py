"""
Rollout API client.
Low-level HTTP access to the Rollout platform API (credentials) and the Rollout
CRM API (people, notes, calls, appointments, ...). Every call is signed with a
fresh bearer token for the session's consumer key.
"""

from dataclasses import dataclass
from typing import Any
from urllib.parse import urljoin

import httpx

from app.config import settings
from app.infrastructure.observability.logging import get_logger, preview
from app.models.domain.session_domain import SessionPreferences
from app.services.rollout.auth import create_rollout_token, resolve_consumer_key

logger = get_logger(__name__)

CREDENTIAL_HEADER = "X-Rollout-Credential-Id"


class RolloutAPIError(Exception):
    """Non-success response (or transport failure) from the Rollout API."""

    def __init__(
        self,
        status_code: int,
        body: str = "",
        method: str | None = None,
        url: str | None = None,
    ):
        super().__init__(f"Rollout API request failed with status {status_code}")
        self.status_code = status_code
        self.body = body
        self.method = method
        self.url = url


def build_url(base_url: str, path: str, search_params: dict[str, Any] | None = None) -> httpx.URL:
    """Join base and path, keeping the base's own path segments."""
    normalized_base = base_url if base_url.endswith("/") else f"{base_url}/"
    relative_path = path[1:] if path.startswith("/") else path
    params = {}
    for key, value in (search_params or {}).items():
        if value is None or value == "":
            continue
        if isinstance(value, bool):
            value = "true" if value else "false"
        params[key] = str(value)
    return httpx.URL(urljoin(normalized_base, relative_path), params=params)


class RolloutClient:
    """Async HTTP client for both Rollout APIs."""

    def __init__(self, http_client: httpx.AsyncClient | None = None):
        self._client = http_client or self._create_client()

    def _create_client(self) -> httpx.AsyncClient:
        timeout = httpx.Timeout(settings.ROLLOUT_REQUEST_TIMEOUT)
        limits = httpx.Limits(max_keepalive_connections=20, max_connections=50)
        return httpx.AsyncClient(timeout=timeout, limits=limits)

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    async def call(
        self,
        preferences: SessionPreferences,
        base_url: str,
        path: str,
        method: str = "GET",
        search_params: dict[str, Any] | None = None,
        body: Any = None,
        credential_id: str | None = None,
        consumer_key: str | None = None,
        headers: dict[str, str] | None = None,
    ) -> Any:
        """
        Issue one authenticated Rollout request.

        Returns:
            Parsed JSON for JSON responses, raw text otherwise.

        Raises:
            RolloutConfigurationError: If no client credentials are configured.
            RolloutAPIError: On a non-2xx status or a transport failure.
        """
        token = create_rollout_token(preferences, resolve_consumer_key(preferences, consumer_key))
        url = build_url(base_url, path, search_params)

        request_headers = {"Authorization": f"Bearer {token.token}"}
        if credential_id:
            request_headers[CREDENTIAL_HEADER] = credential_id
        request_headers.update(headers or {})

        request_kwargs: dict[str, Any] = {"headers": request_headers}
        if body is not None:
            request_headers["Content-Type"] = "application/json"
            request_kwargs["json"] = body

        logger.info("Rollout API request", method=method, url=str(url), credential_id=credential_id)

        try:
            response = await self._client.request(method, url, **request_kwargs)
        except httpx.TimeoutException as e:
            logger.error("Rollout API request timed out", method=method, url=str(url), error=str(e))
            raise RolloutAPIError(504, str(e), method=method, url=str(url)) from e
        except httpx.RequestError as e:
            logger.error("Rollout API transport error", method=method, url=str(url), error=str(e))
            raise RolloutAPIError(502, str(e), method=method, url=str(url)) from e

        if not response.is_success:
            logger.error(
                "Rollout API request failed",
                method=method,
                url=str(url),
                status_code=response.status_code,
                body=preview(response.text),
            )
            raise RolloutAPIError(response.status_code, response.text, method=method, url=str(url))

        content_type = response.headers.get("content-type", "")
        if "application/json" in content_type:
            data = response.json() if response.content else None
        else:
            data = response.text

        logger.info(
            "Rollout API request succeeded",
            method=method,
            url=str(url),
            status_code=response.status_code,
            response_preview=preview(data),
        )
        return data


@dataclass
class CrmConnection:
    """
    One request's view of the CRM API: session auth plus the credential
    (connected account) every call is scoped to.
    """

    client: RolloutClient
    preferences: SessionPreferences
    credential_id: str
    base_url: str = ""

    def __post_init__(self):
        if not self.base_url:
            self.base_url = settings.ROLLOUT_CRM_API_BASE

    async def request(
        self,
        path: str,
        method: str = "GET",
        search_params: dict[str, Any] | None = None,
        body: Any = None,
    ) -> Any:
        return await self.client.call(
            self.preferences,
            self.base_url,
            path,
            method=method,
            search_params=search_params,
            body=body,
            credential_id=self.credential_id,
        )


# Shared instance, closed in the app lifespan
rollout_client = RolloutClient()


def get_rollout_client() -> RolloutClient:
    return rollout_client
