"""
REST client for the telemetry API.

Fetches the latest parameter snapshot for a device on demand. Used for
manual "check now" requests and for polling devices whose push feed has
gone quiet.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

import aiohttp

from effluent_monitor.errors import LatestDataError

from .models import ParameterSnapshot

logger = logging.getLogger(__name__)


class LatestDataClient:
    """
    Async REST client for ``GET /api/devices/{device_id}/latest-data``.

    Features:
        - Automatic retries with exponential backoff on 5xx/timeouts
        - 404 maps to "no data yet" (returns None)

    Usage:
        async with LatestDataClient("https://app.example") as client:
            snapshot = await client.fetch_latest("dev-1")
    """

    def __init__(
        self,
        base_url: str,
        session: Optional[aiohttp.ClientSession] = None,
        timeout: float = 15.0,
        max_retries: int = 3,
        retry_delay: float = 1.0,
    ):
        self._base_url = base_url.rstrip("/")
        self._session = session
        self._owns_session = session is None
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._max_retries = max_retries
        self._retry_delay = retry_delay

    async def __aenter__(self) -> "LatestDataClient":
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def close(self) -> None:
        if self._owns_session and self._session:
            await self._session.close()
            self._session = None

    async def _get(self, url: str) -> Optional[Any]:
        """GET with retries. Returns parsed JSON, or None on 404."""
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
            self._owns_session = True

        last_error: Optional[Exception] = None

        for attempt in range(self._max_retries):
            try:
                async with self._session.get(url) as response:
                    if response.status == 404:
                        return None

                    if 400 <= response.status < 500:
                        text = await response.text()
                        raise LatestDataError(
                            f"API error: {response.status} - {text}",
                            status_code=response.status,
                        )

                    if response.status >= 500:
                        text = await response.text()
                        raise LatestDataError(
                            f"Server error: {response.status} - {text}",
                            status_code=response.status,
                        )

                    return await response.json()

            except LatestDataError as e:
                if e.status_code and e.status_code >= 500:
                    logger.warning(
                        f"Server error {e.status_code}, retry {attempt + 1}/{self._max_retries}"
                    )
                    last_error = e
                    await asyncio.sleep(self._retry_delay * (2 ** attempt))
                else:
                    raise

            except asyncio.TimeoutError:
                logger.warning(f"Request timeout, retry {attempt + 1}/{self._max_retries}")
                last_error = LatestDataError("Request timed out")
                await asyncio.sleep(self._retry_delay * (2 ** attempt))

            except asyncio.CancelledError:
                raise

            except aiohttp.ClientError as e:
                logger.warning(f"Request failed: {e}, retry {attempt + 1}/{self._max_retries}")
                last_error = LatestDataError(str(e))
                await asyncio.sleep(self._retry_delay * (2 ** attempt))

        raise last_error or LatestDataError("Request failed after retries")

    async def fetch_latest(self, device_id: str) -> Optional[ParameterSnapshot]:
        """
        Fetch the most recent snapshot for a device.

        Returns:
            ParameterSnapshot, or None if the device has no data yet

        Raises:
            LatestDataError: On API errors after retries
        """
        data = await self._get(f"{self._base_url}/api/devices/{device_id}/latest-data")
        if not data:
            return None

        # The endpoint wraps the reading as {"data": {...}}
        if isinstance(data, dict) and isinstance(data.get("data"), dict):
            data = data["data"]

        if not isinstance(data, dict):
            raise LatestDataError(f"Unexpected latest-data payload for {device_id}")

        return ParameterSnapshot.from_payload(device_id, data)
