"""Currently-playing lookup against the Spotify Web API.

fetch_currently_playing() runs a small bounded loop:
- 401: refresh once via AuthFlow, retry once
- 429: sleep for Retry-After (default 1s), retry up to max_rate_limit_retries
- anything else that is not 2xx: UpstreamFailure
"""

import asyncio
import logging
import math
from dataclasses import dataclass, field
from typing import Optional, Union

import httpx

from oauth.errors import (
    AuthExchangeError,
    Unauthenticated,
    UpstreamFailure,
    UpstreamRateLimited,
    UpstreamUnauthorized,
)
from oauth.flow import AuthFlow
from oauth.session import SessionState

logger = logging.getLogger(__name__)

CURRENTLY_PLAYING_URL = "https://api.spotify.com/v1/me/player/currently-playing"

DEFAULT_RETRY_AFTER = 1.0
MAX_RATE_LIMIT_RETRIES = 3


@dataclass
class Track:
    id: Optional[str]
    name: str
    artists: list[str] = field(default_factory=list)
    album: Optional[str] = None
    artwork_url: Optional[str] = None
    duration_ms: Optional[int] = None
    url: Optional[str] = None

    @property
    def artist(self) -> str:
        return ", ".join(self.artists)

    @classmethod
    def from_item(cls, item: dict) -> "Track":
        album = item.get("album") or {}
        images = album.get("images") or []
        return cls(
            id=item.get("id"),
            name=item.get("name", ""),
            artists=[a.get("name", "") for a in item.get("artists") or []],
            album=album.get("name"),
            artwork_url=images[0].get("url") if images else None,
            duration_ms=item.get("duration_ms"),
            url=(item.get("external_urls") or {}).get("spotify"),
        )


@dataclass
class Playing:
    track: Track
    is_playing: bool = True
    progress_ms: Optional[int] = None

    def to_dict(self) -> dict:
        return {
            "playing": self.is_playing,
            "id": self.track.id,
            "name": self.track.name,
            "artist": self.track.artist,
            "artists": self.track.artists,
            "album": self.track.album,
            "artworkUrl": self.track.artwork_url,
            "durationMs": self.track.duration_ms,
            "progressMs": self.progress_ms,
            "url": self.track.url,
        }


@dataclass
class NotPlaying:
    message: str = "No song currently playing"

    def to_dict(self) -> dict:
        return {"playing": False, "message": self.message}


NowPlaying = Union[Playing, NotPlaying]


def parse_retry_after(value: Optional[str]) -> float:
    """Seconds from a Retry-After header; DEFAULT_RETRY_AFTER if absent or unusable."""
    if value is None:
        return DEFAULT_RETRY_AFTER
    try:
        seconds = float(value.strip())
    except ValueError:
        return DEFAULT_RETRY_AFTER
    if math.isnan(seconds) or math.isinf(seconds) or seconds < 0:
        return DEFAULT_RETRY_AFTER
    return seconds


def parse_now_playing(payload: Optional[dict]) -> NowPlaying:
    """Project the provider payload onto Playing / NotPlaying.

    No item (ads, private session, nothing loaded) counts as not playing.
    A paused track is Playing with is_playing False.
    """
    if not isinstance(payload, dict) or not payload.get("item"):
        return NotPlaying()
    return Playing(
        track=Track.from_item(payload["item"]),
        is_playing=bool(payload.get("is_playing")),
        progress_ms=payload.get("progress_ms"),
    )


class UpstreamClient:
    """Authenticated access to the player endpoint."""

    def __init__(
        self,
        http: httpx.AsyncClient,
        session: SessionState,
        auth: AuthFlow,
        max_rate_limit_retries: int = MAX_RATE_LIMIT_RETRIES,
        sleep=asyncio.sleep,
    ):
        self.http = http
        self.session = session
        self.auth = auth
        self.max_rate_limit_retries = max_rate_limit_retries
        self._sleep = sleep

    async def _get(self, access_token: str) -> httpx.Response:
        try:
            return await self.http.get(
                CURRENTLY_PLAYING_URL,
                headers={"Authorization": f"Bearer {access_token}"},
            )
        except httpx.HTTPError as e:
            logger.error(f"[UPSTREAM] Error fetching current song: {e}")
            raise UpstreamFailure(f"Upstream unreachable: {e}") from e

    async def fetch_currently_playing(self) -> NowPlaying:
        if not self.session.access_token:
            raise Unauthenticated()

        refreshed = False
        rate_limit_retries = 0

        while True:
            response = await self._get(self.session.access_token)
            status = response.status_code

            if status == 401:
                if refreshed or not self.session.refresh_token:
                    logger.warning("[UPSTREAM] Access token rejected, no refresh left to try")
                    raise UpstreamUnauthorized()
                logger.info("[UPSTREAM] Access token expired, refreshing...")
                try:
                    await self.auth.refresh(self.session.refresh_token)
                except AuthExchangeError as e:
                    raise UpstreamUnauthorized() from e
                refreshed = True
                continue

            if status == 429:
                retry_after = parse_retry_after(response.headers.get("Retry-After"))
                if rate_limit_retries >= self.max_rate_limit_retries:
                    logger.warning(f"[UPSTREAM] Still rate limited after {rate_limit_retries} retries")
                    raise UpstreamRateLimited(retry_after)
                rate_limit_retries += 1
                logger.info(f"[UPSTREAM] Rate limited, retrying in {retry_after}s ({rate_limit_retries}/{self.max_rate_limit_retries})")
                await self._sleep(retry_after)
                continue

            if status == 204:
                return NotPlaying()

            if status // 100 != 2:
                logger.error(f"[UPSTREAM] Error fetching current song: {status} {response.text[:200]}")
                raise UpstreamFailure(status=status)

            try:
                payload = response.json() if response.content else None
            except ValueError as e:
                raise UpstreamFailure("Upstream returned invalid JSON", status=status) from e
            return parse_now_playing(payload)
