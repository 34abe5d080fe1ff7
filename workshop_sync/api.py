"""Steam Web API client for workshop item metadata."""

import logging
import os
import time
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Iterable

import requests

from .catalog import RESULT_FILE_NOT_FOUND

log = logging.getLogger(__name__)

STEAM_API_BASE_URL = "https://api.steampowered.com"
PUBLISHED_FILE_DETAILS_URL = (
    f"{STEAM_API_BASE_URL}/ISteamRemoteStorage/GetPublishedFileDetails/v1/"
)
USER_AGENT = "workshop-sync/0.1.0"
DEFAULT_RETRY_AFTER = 60


class SteamAPIError(Exception):
    """Base exception for Steam Web API errors."""

    pass


class SteamRateLimited(SteamAPIError):
    """Raised when rate limited by the API."""

    def __init__(self, retry_after: int = 60):
        self.retry_after = retry_after
        super().__init__(f"Rate limited. Retry after {retry_after} seconds.")


def _parse_retry_after(value: str | None) -> int:
    """Seconds to wait from a Retry-After header, either delta-seconds or an HTTP-date."""
    if not value:
        return DEFAULT_RETRY_AFTER
    value = value.strip()
    if value.isdigit():
        return int(value)
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return DEFAULT_RETRY_AFTER
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return max(0, int((when - datetime.now(timezone.utc)).total_seconds()))


class SteamWorkshopAPI:
    """Client for the ISteamRemoteStorage workshop endpoints."""

    def __init__(
        self,
        api_key: str | None = None,
        session: requests.Session | None = None,
        timeout: float = 30.0,
        min_request_interval: float = 0.2,
    ):
        self.api_key = api_key or os.environ.get("STEAM_API_KEY")
        if not self.api_key:
            raise SteamAPIError(
                "No API key provided. Set STEAM_API_KEY environment variable "
                "or pass --api-key flag."
            )
        self.session = session or requests.Session()
        self.session.headers.update({"User-Agent": USER_AGENT})
        self.timeout = timeout
        self._last_request_time = 0.0
        self._min_request_interval = min_request_interval

    def _rate_limit_wait(self) -> None:
        """Ensure we don't exceed rate limits."""
        elapsed = time.time() - self._last_request_time
        if elapsed < self._min_request_interval:
            time.sleep(self._min_request_interval - elapsed)
        self._last_request_time = time.time()

    def _handle_response(self, response: requests.Response) -> dict[str, Any]:
        """Handle API response and raise appropriate errors."""
        if response.status_code == 429:
            retry_after = _parse_retry_after(response.headers.get("Retry-After"))
            raise SteamRateLimited(retry_after)
        if response.status_code == 403:
            raise SteamAPIError("Access forbidden: check STEAM_API_KEY")
        try:
            response.raise_for_status()
            return response.json()
        except requests.HTTPError as e:
            raise SteamAPIError(f"HTTP error: {e}")
        except ValueError as e:
            raise SteamAPIError(f"Invalid JSON response: {e}")

    def get_published_file_details(self, mod_id: str) -> dict[str, Any] | None:
        """
        Get the published file details for one workshop item.

        Returns the raw details object (``result``, ``time_updated``,
        ``file_size``, ``title``...). Steam answers unknown ids with
        ``result == 9`` rather than an HTTP error; that object is returned
        as-is. Returns None if the response carries no details at all.
        """
        self._rate_limit_wait()
        try:
            response = self.session.post(
                PUBLISHED_FILE_DETAILS_URL,
                data={
                    "itemcount": "1",
                    "publishedfileids[0]": str(mod_id),
                    "key": self.api_key,
                },
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise SteamAPIError(f"Request failed for {mod_id}: {e}")

        data = self._handle_response(response)
        details = (data.get("response") or {}).get("publishedfiledetails") or []
        if not details:
            return None
        return details[0]


class MetadataFetcher:
    """Per-item metadata lookups that never raise for a single item."""

    def __init__(self, api: SteamWorkshopAPI):
        self.api = api

    def fetch(self, mod_id: str) -> dict[str, Any] | None:
        try:
            details = self.api.get_published_file_details(mod_id)
        except SteamAPIError as e:
            log.warning("Error fetching mod info for mod %s: %s", mod_id, e)
            return None

        if details is None:
            log.warning("No details returned for mod %s", mod_id)
        elif details.get("result") == RESULT_FILE_NOT_FOUND:
            log.warning("Mod %s is not found on Steam Workshop", mod_id)
        return details

    def fetch_all(self, mod_ids: Iterable[str]) -> dict[str, dict[str, Any] | None]:
        return {mod_id: self.fetch(mod_id) for mod_id in mod_ids}
