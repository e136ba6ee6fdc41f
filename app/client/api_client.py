"""Async HTTP client for the progress API.

Errors are split by what the caller should do about them:

  TransientNetworkError  connection failures and 5xx; worth retrying
  ProgressApiError       4xx including 429; the same request would
                         fail again

fetch_progress retries transient errors a bounded number of times with a
fixed delay, then gives up and lets the caller fall back to its local
cache.  Writes are never retried here: the next debounced observation
supersedes a lost one.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

from app.services.intervals import Interval

logger = logging.getLogger(__name__)


class ProgressApiError(Exception):
    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class TransientNetworkError(ProgressApiError):
    pass


class ProgressApiClient:
    def __init__(
        self,
        base_url: str = "",
        *,
        client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
        max_retries: int = 3,
        retry_delay: float = 5.0,
    ) -> None:
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)
        self._max_retries = max_retries
        self._retry_delay = retry_delay

    async def __aenter__(self) -> ProgressApiClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def record(
        self,
        *,
        user_id: str,
        video_id: str,
        current_time: float,
        duration: float,
        interval: Interval | None = None,
    ) -> dict[str, Any]:
        body: dict[str, Any] = {
            "userId": user_id,
            "videoId": video_id,
            "currentTime": current_time,
            "duration": duration,
        }
        if interval is not None:
            body["interval"] = [interval[0], interval[1]]
        return await self._request("POST", "/progress", json=body)

    async def record_bulk(
        self, updates: list[dict[str, Any]], *, user_id: str | None = None
    ) -> list[dict[str, Any]]:
        body: dict[str, Any] = {"updates": updates}
        if user_id is not None:
            body["userId"] = user_id
        data = await self._request("POST", "/progress/bulk", json=body)
        return data["results"]

    async def fetch_progress(
        self, *, user_id: str, video_id: str, duration: float | None = None
    ) -> dict[str, Any]:
        params: dict[str, Any] = {"userId": user_id}
        if duration:
            params["duration"] = duration

        attempt = 0
        while True:
            try:
                return await self._request(
                    "GET", f"/progress/{video_id}", params=params
                )
            except TransientNetworkError as e:
                if attempt >= self._max_retries:
                    raise
                attempt += 1
                logger.warning(
                    "Fetching progress failed (%s); retry %d/%d in %.1fs",
                    e,
                    attempt,
                    self._max_retries,
                    self._retry_delay,
                )
                await asyncio.sleep(self._retry_delay)

    async def list_progress(self, *, user_id: str) -> list[dict[str, Any]]:
        data = await self._request("GET", "/progress", params={"userId": user_id})
        return data["progress"]

    async def stats(self, *, user_id: str | None = None) -> dict[str, Any]:
        params = {"userId": user_id} if user_id else None
        data = await self._request("GET", "/progress/stats/summary", params=params)
        return data["stats"]

    async def _request(self, method: str, url: str, **kwargs: Any) -> dict[str, Any]:
        logger.debug("API call %s %s", method, url)
        try:
            resp = await self._client.request(method, url, **kwargs)
        except httpx.TransportError as e:
            raise TransientNetworkError(f"network error: {e}") from e

        if resp.status_code == 429:
            raise ProgressApiError(
                "Rate limit exceeded. Please try again later.", status_code=429
            )
        if resp.status_code >= 400:
            message = _error_message(resp)
            if resp.status_code >= 500:
                raise TransientNetworkError(message, status_code=resp.status_code)
            raise ProgressApiError(message, status_code=resp.status_code)
        return resp.json()


def _error_message(resp: httpx.Response) -> str:
    try:
        data = resp.json()
    except ValueError:
        return f"HTTP error! status: {resp.status_code}"
    if isinstance(data, dict):
        return str(
            data.get("message") or data.get("error") or f"HTTP {resp.status_code}"
        )
    return f"HTTP error! status: {resp.status_code}"
