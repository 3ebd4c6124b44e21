"""HTTP client for the event ingestion API."""

from __future__ import annotations

from typing import Any

import httpx

EVENTS_PATH = "/api/v1/events"
EVENTS_LIST_PATH = "/api/v1/events/list"
HEALTH_PATH = "/health"


class ApiRequestError(Exception):
    """Transport-level failure talking to the event API."""

    def __init__(
        self, message: str, *, method: str, url: str, cause: Exception | None = None
    ) -> None:
        self.method = method
        self.url = url
        self.cause = cause
        super().__init__(message)


class EventApiClient:
    """Thin httpx wrapper over the three endpoints pipectl exercises.

    Status codes are returned to the caller untouched; only transport
    failures (connection refused, timeouts) raise :class:`ApiRequestError`.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        timeout: float = 5.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._client = httpx.Client(
            base_url=self.base_url,
            timeout=timeout,
            headers={"x-api-key": api_key},
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> EventApiClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            return self._client.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            url = f"{self.base_url}{path}"
            raise ApiRequestError(
                f"{method} {url} failed: {exc}",
                method=method,
                url=url,
                cause=exc,
            ) from exc

    def health(self) -> httpx.Response:
        return self._request("GET", HEALTH_PATH)

    def send_event(
        self,
        environment_id: str,
        event_type: str,
        properties: dict[str, Any],
    ) -> httpx.Response:
        payload = {
            "environment_id": environment_id,
            "event_type": event_type,
            "properties": properties,
        }
        return self._request("POST", EVENTS_PATH, json=payload)

    def list_events(self, environment_id: str, *, limit: int = 10) -> httpx.Response:
        payload = {"environment_id": environment_id, "limit": limit}
        return self._request("POST", EVENTS_LIST_PATH, json=payload)
