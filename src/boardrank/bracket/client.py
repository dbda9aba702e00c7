"""
Challonge v1 API client.

Settlement only needs two reads from the bracket provider, so they sit
behind the narrow BracketProvider protocol. Retry/backoff or caching can be
layered on by wrapping a provider without touching the rating code.

Calls are blocking, sequential and unretried. Any non-2xx answer raises
ProviderAPIError with the upstream status and body, which aborts the
settlement; rerun is the recovery path.

Usage:
    client = ChallongeClient.from_settings()
    participants = client.fetch_participants("my-bracket")
    matches = client.fetch_matches("my-bracket")
"""

import logging
from typing import Optional, Protocol
from urllib.parse import quote, urlparse

import requests

from boardrank.bracket.models import ProviderMatch, ProviderParticipant
from boardrank.config import settings
from boardrank.errors import ConfigurationError, ProviderAPIError, SettlementError

logger = logging.getLogger(__name__)


class BracketProvider(Protocol):
    """The two reads settlement needs from a bracket provider."""

    def fetch_participants(self, slug: str) -> list[ProviderParticipant]:
        ...

    def fetch_matches(self, slug: str) -> list[ProviderMatch]:
        ...


def extract_slug(url: Optional[str]) -> Optional[str]:
    """
    Take the tournament slug from a Challonge URL (its last path segment).

    Example:
        extract_slug("https://challonge.com/my_cup_2025")  # "my_cup_2025"
        extract_slug("not a url")                          # None
    """
    if not url:
        return None
    parsed = urlparse(url.strip())
    if not parsed.scheme or not parsed.netloc:
        return None
    segments = [segment for segment in parsed.path.split("/") if segment]
    return segments[-1] if segments else None


class ChallongeClient:
    """
    Minimal Challonge v1 client.

    The API key is sent as the api_key query parameter, which is what the
    v1 API expects.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.challonge.com/v1",
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ):
        if not api_key:
            raise ConfigurationError("Missing Challonge API key (CHALLONGE_API_KEY).")
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({"Accept": "application/json"})

    @classmethod
    def from_settings(cls) -> "ChallongeClient":
        """Build a client from environment configuration."""
        return cls(
            api_key=settings.challonge_api_key or "",
            base_url=settings.challonge_api_base,
            timeout=settings.challonge_timeout_seconds,
        )

    def fetch_participants(self, slug: str) -> list[ProviderParticipant]:
        """All participants of a tournament."""
        payload = self._get(f"/tournaments/{quote(slug, safe='')}/participants.json")
        return [ProviderParticipant.from_api(record) for record in payload]

    def fetch_matches(self, slug: str) -> list[ProviderMatch]:
        """Completed matches of a tournament."""
        payload = self._get(
            f"/tournaments/{quote(slug, safe='')}/matches.json",
            params={"state": "complete"},
        )
        return [ProviderMatch.from_api(record) for record in payload]

    def _get(self, path: str, params: Optional[dict] = None) -> list:
        query = {"api_key": self.api_key}
        if params:
            query.update(params)

        url = f"{self.base_url}{path}"
        logger.debug("GET %s", url)
        try:
            response = self.session.get(url, params=query, timeout=self.timeout)
        except requests.RequestException as exc:
            raise SettlementError(f"Challonge request failed: {exc}", status_code=502) from exc

        if not response.ok:
            raise ProviderAPIError(response.status_code, response.text)

        data = response.json()
        if not isinstance(data, list):
            raise ProviderAPIError(response.status_code, f"expected a JSON array, got {type(data).__name__}")
        return data
