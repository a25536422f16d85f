# src/moodvibe/agents/spotify.py
import logging
import threading
import time
from typing import Callable, Optional

import requests

from .config import (
    SPOTIFY_CLIENT_ID,
    SPOTIFY_CLIENT_SECRET,
    SPOTIFY_MARKET,
    UPSTREAM_TIMEOUT_SECONDS,
)
from .errors import TrackSearchError, UpstreamAuthError
from .models import Song

logger = logging.getLogger(__name__)

TOKEN_URL = "https://accounts.spotify.com/api/token"
SEARCH_URL = "https://api.spotify.com/v1/search"

TOKEN_SAFETY_MARGIN_SECONDS = 60
SEARCH_LIMIT = 20
MAX_SONGS = 6
UNKNOWN_ARTIST = "Unknown Artist"


class SpotifyTokenCache:
    """
    Holds the client-credentials access token for the Spotify Web API.

    The token is refreshed when `now >= expires_at`, where `expires_at` is
    stored 60 seconds ahead of the real expiry. Refresh is single-flight:
    concurrent callers that find the token expired wait on the lock and
    reuse the token fetched by whichever caller got there first.
    """

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        session: Optional[requests.Session] = None,
        clock: Callable[[], float] = time.monotonic,
        timeout: float = UPSTREAM_TIMEOUT_SECONDS,
    ):
        self._client_id = client_id
        self._client_secret = client_secret
        self._session = session or requests.Session()
        self._clock = clock
        self._timeout = timeout
        self._lock = threading.Lock()
        self._access_token: Optional[str] = None
        self._expires_at = 0.0

    def _is_fresh(self) -> bool:
        return self._access_token is not None and self._clock() < self._expires_at

    def get_access_token(self) -> str:
        if self._is_fresh():
            return self._access_token

        with self._lock:
            # Another thread may have refreshed while we waited.
            if self._is_fresh():
                return self._access_token
            self._refresh()
            return self._access_token

    def _refresh(self) -> None:
        if not self._client_id or not self._client_secret:
            raise UpstreamAuthError("Spotify credentials not configured")

        try:
            resp = self._session.post(
                TOKEN_URL,
                data={"grant_type": "client_credentials"},
                auth=(self._client_id, self._client_secret),
                timeout=self._timeout,
            )
            resp.raise_for_status()
            data = resp.json()
            token = data["access_token"]
            expires_in = float(data.get("expires_in", 3600))
        except (requests.RequestException, ValueError, KeyError, TypeError) as e:
            logger.error(f"Failed to get Spotify access token: {e}")
            raise UpstreamAuthError("Failed to authenticate with Spotify") from e

        self._access_token = token
        self._expires_at = self._clock() + expires_in - TOKEN_SAFETY_MARGIN_SECONDS
        logger.info(f"Fetched new Spotify access token, valid for {int(expires_in)}s")


def track_key(track: dict) -> tuple:
    artists = track.get("artists") or [{}]
    return track.get("name"), artists[0].get("name")


def dedupe_tracks(tracks: list[dict]) -> list[dict]:
    """
    Keeps the first occurrence of each (track name, first artist) pair,
    preserving catalog order.
    """
    seen = set()
    unique = []
    for track in tracks:
        key = track_key(track)
        if key in seen:
            continue
        seen.add(key)
        unique.append(track)
    return unique


def to_song(track: dict) -> Song:
    """Projects a Spotify search item to a Song."""
    artists = track.get("artists") or []
    album = track.get("album") or {}
    images = album.get("images") or []

    song = Song(
        id=track["id"],
        name=track["name"],
        artist=(artists[0].get("name") if artists else None) or UNKNOWN_ARTIST,
        album=album.get("name", ""),
        spotify_url=(track.get("external_urls") or {}).get("spotify", ""),
    )
    if images and images[0].get("url"):
        song.image_url = images[0]["url"]
    if track.get("preview_url"):
        song.preview_url = track["preview_url"]
    return song


class SpotifyService:
    def __init__(
        self,
        token_cache: SpotifyTokenCache,
        session: Optional[requests.Session] = None,
        market: str = SPOTIFY_MARKET,
        timeout: float = UPSTREAM_TIMEOUT_SECONDS,
    ):
        self.token_cache = token_cache
        self.market = market
        self._session = session or requests.Session()
        self._timeout = timeout

    def search_tracks(self, keywords: list[str]) -> list[Song]:
        """
        Searches the catalog for tracks matching any of the keywords.

        Args:
            keywords (list[str]): Genre keywords, OR-joined into one query.

        Returns:
            list[Song]: At most six songs, unique by (name, artist), in
                        catalog order.

        Raises:
            UpstreamAuthError: If no access token could be obtained.
            TrackSearchError: If the search request fails.
        """
        access_token = self.token_cache.get_access_token()
        query = " OR ".join(keywords)

        try:
            resp = self._session.get(
                SEARCH_URL,
                headers={"Authorization": f"Bearer {access_token}"},
                params={
                    "q": query,
                    "type": "track",
                    "limit": SEARCH_LIMIT,
                    "market": self.market,
                },
                timeout=self._timeout,
            )
            resp.raise_for_status()
            # The catalog occasionally returns null entries for unavailable tracks.
            tracks = [t for t in resp.json()["tracks"]["items"] if isinstance(t, dict)]
            songs = [to_song(t) for t in dedupe_tracks(tracks)[:MAX_SONGS]]
        except (requests.RequestException, ValueError, KeyError, TypeError, AttributeError) as e:
            logger.error(f"Failed to search Spotify tracks for query '{query}': {e}")
            raise TrackSearchError("Failed to search for music recommendations") from e

        logger.info(f"Spotify search '{query}' returned {len(tracks)} tracks, kept {len(songs)}")
        return songs


_spotify_service = None

def get_spotify_service() -> SpotifyService:
    """Returns the shared SpotifyService, creating it on first use."""
    global _spotify_service
    if _spotify_service is None:
        session = requests.Session()
        token_cache = SpotifyTokenCache(
            SPOTIFY_CLIENT_ID, SPOTIFY_CLIENT_SECRET, session=session
        )
        _spotify_service = SpotifyService(token_cache, session=session)
    return _spotify_service
