"""
Social analytics provider client.

Fetches public profile metrics for a handle and normalizes the provider's
platform-specific payloads into ``ProfileMetrics``.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from reach.core.circuit_breaker import CircuitBreaker, get_social_analytics_circuit_breaker
from reach.core.config import settings
from reach.core.exceptions import (
    ErrorCode,
    ServiceTimeoutError,
    SocialAnalyticsError,
    ValidationException,
)
from reach.core.logging import get_logger
from reach.db.models.social_account import SocialPlatform

logger = get_logger(__name__)

PROFILE_URL_PATTERNS: dict[SocialPlatform, re.Pattern] = {
    SocialPlatform.INSTAGRAM: re.compile(r"instagram\.com/([^/?#]+)", re.IGNORECASE),
    SocialPlatform.TIKTOK: re.compile(r"tiktok\.com/@?([^/?#]+)", re.IGNORECASE),
    SocialPlatform.TWITTER: re.compile(r"(?:twitter\.com|x\.com)/([^/?#]+)", re.IGNORECASE),
}


def parse_platform(value: str) -> SocialPlatform:
    try:
        return SocialPlatform((value or "").strip().lower())
    except ValueError:
        raise ValidationException(
            f"Unsupported platform: {value}",
            field="platform",
            error_code=ErrorCode.UNSUPPORTED_PLATFORM,
            details={"supported": [p.value for p in SocialPlatform]},
        )


def extract_handle(platform: SocialPlatform, profile_url: str) -> str:
    """Pull the account handle out of a profile URL"""
    match = PROFILE_URL_PATTERNS[platform].search(profile_url or "")
    if not match:
        raise ValidationException(
            f"Invalid {platform.value} profile URL",
            field="profile_url",
        )
    return match.group(1).lstrip("@")


@dataclass(frozen=True)
class ProfileMetrics:
    handle: str
    followers: int
    engagement_rate: Optional[float] = None
    following: Optional[int] = None
    posts: Optional[int] = None


def _dig(payload: Any, *paths: tuple[str, ...]) -> Optional[dict]:
    """First dict found along any of ``paths``; the provider nests inconsistently"""
    for path in paths:
        node = payload
        for key in path:
            if not isinstance(node, dict):
                node = None
                break
            node = node.get(key)
        if isinstance(node, dict):
            return node
    return None


def _int(value: Any) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _parse_instagram(handle: str, payload: dict) -> Optional[ProfileMetrics]:
    user = _dig(
        payload,
        ("data", "data", "data", "user"),
        ("data", "data", "user"),
        ("data", "user"),
        ("user",),
    )
    if not user:
        return None

    followers = _int((user.get("edge_followed_by") or {}).get("count")) or _int(user.get("follower_count")) or 0
    following = _int((user.get("edge_follow") or {}).get("count")) or _int(user.get("following_count"))
    media = user.get("edge_owner_to_timeline_media") or {}
    posts = _int(media.get("count")) or _int(user.get("media_count"))

    engagement = None
    edges = media.get("edges") or []
    if edges and followers > 0:
        interactions = [
            (_int(((e.get("node") or {}).get("edge_liked_by") or {}).get("count")) or 0)
            + (_int(((e.get("node") or {}).get("edge_media_to_comment") or {}).get("count")) or 0)
            for e in edges[:12]
        ]
        engagement = round(sum(interactions) / len(interactions) / followers * 100, 2)

    return ProfileMetrics(handle, followers, engagement, following, posts)


def _parse_tiktok(handle: str, payload: dict) -> Optional[ProfileMetrics]:
    stats = _dig(payload, ("data", "stats"), ("data", "userInfo", "stats"), ("stats",))
    if not stats:
        return None
    followers = _int(stats.get("followerCount")) or 0
    videos = _int(stats.get("videoCount"))
    hearts = _int(stats.get("heartCount") or stats.get("heart"))

    engagement = None
    if followers > 0 and videos and hearts:
        # likes per video relative to audience, capped at a plausible ceiling
        engagement = round(min(hearts / videos / followers * 100, 25.0), 2)

    return ProfileMetrics(handle, followers, engagement, _int(stats.get("followingCount")), videos)


def _parse_twitter(handle: str, payload: dict) -> Optional[ProfileMetrics]:
    legacy = _dig(payload, ("data", "data", "legacy"), ("data", "legacy"), ("legacy",))
    if not legacy:
        return None
    followers = _int(legacy.get("followers_count")) or 0

    if followers < 10_000:
        engagement = 2.0
    elif followers < 100_000:
        engagement = 1.5
    elif followers < 1_000_000:
        engagement = 1.0
    else:
        engagement = 0.5

    return ProfileMetrics(
        handle,
        followers,
        engagement,
        _int(legacy.get("friends_count")),
        _int(legacy.get("statuses_count")),
    )


_PARSERS = {
    SocialPlatform.INSTAGRAM: _parse_instagram,
    SocialPlatform.TIKTOK: _parse_tiktok,
    SocialPlatform.TWITTER: _parse_twitter,
}


class SocialAnalyticsClient:
    service_name = "social_analytics"

    def __init__(
        self,
        circuit_breaker: CircuitBreaker,
        *,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
    ) -> None:
        self._circuit_breaker = circuit_breaker
        self._api_key = (api_key if api_key is not None else settings.SOCIAL_ANALYTICS_API_KEY).strip().strip("'\"")
        self._base_url = (base_url or settings.SOCIAL_ANALYTICS_BASE_URL).rstrip("/")
        self._timeout = timeout or settings.SOCIAL_ANALYTICS_TIMEOUT_SECONDS

    async def _get(self, platform: SocialPlatform, handle: str) -> httpx.Response:
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            try:
                response = await client.get(
                    f"{self._base_url}/{platform.value}/profile",
                    params={"handle": handle},
                    headers={
                        "Authorization": f"Bearer {self._api_key}",
                        "Accept": "application/json",
                    },
                )
            except httpx.TimeoutException:
                raise ServiceTimeoutError(self.service_name, self._timeout)
            except httpx.RequestError as exc:
                raise SocialAnalyticsError(
                    f"network error: {exc}",
                    details={"platform": platform.value, "network_error": True},
                )
        if response.status_code >= 500:
            raise SocialAnalyticsError.from_response(f"{platform.value}/profile", response)
        return response

    async def fetch_profile(self, platform: SocialPlatform, handle: str) -> ProfileMetrics:
        if not self._api_key:
            raise SocialAnalyticsError("SOCIAL_ANALYTICS_API_KEY is not configured")

        response = await self._circuit_breaker.execute(self._get, platform, handle)

        if response.status_code == 404:
            raise SocialAnalyticsError(
                f"{platform.value} profile not found: {handle}",
                details={"platform": platform.value, "handle": handle},
            )
        if response.status_code >= 400:
            raise SocialAnalyticsError.from_response(f"{platform.value}/profile", response)

        try:
            payload = response.json()
        except ValueError:
            raise SocialAnalyticsError("provider returned invalid JSON")

        metrics = _PARSERS[platform](handle, payload if isinstance(payload, dict) else {})
        if metrics is None:
            logger.warning(
                "Unrecognized social analytics payload",
                extra_data={
                    "platform": platform.value,
                    "handle": handle,
                    "top_level_keys": list(payload)[:10] if isinstance(payload, dict) else None,
                },
            )
            raise SocialAnalyticsError(
                f"could not read {platform.value} profile data",
                details={"platform": platform.value, "handle": handle},
            )
        return metrics


def get_social_analytics_client() -> SocialAnalyticsClient:
    return SocialAnalyticsClient(get_social_analytics_circuit_breaker())
