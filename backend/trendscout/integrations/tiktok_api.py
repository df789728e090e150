"""
TikTok trending API client (RapidAPI "tiktok-api23").

Only two endpoints are used: the trending feed for discovery and the post
detail lookup, which carries fresher author stats than the feed.
"""
from __future__ import annotations

import logging
from typing import Any

import httpx

from trendscout.errors import UpstreamFetchError
from trendscout.integrations.responses import json_body

logger = logging.getLogger(__name__)

TRENDING_PATH = "/api/post/trending"
POST_DETAIL_PATH = "/api/post/detail"
MAX_TRENDING_COUNT = 30


class TikTokTrendingClient:
    def __init__(self, http: httpx.AsyncClient, *, api_key: str | None, host: str):
        self.http = http
        self.api_key = api_key
        self.host = host

    def _headers(self) -> dict[str, str]:
        if not self.api_key:
            raise UpstreamFetchError("RAPIDAPI_KEY is not configured")
        return {"x-rapidapi-key": self.api_key, "x-rapidapi-host": self.host}

    async def fetch_trending(self, count: int) -> list[dict[str, Any]]:
        count = max(1, min(count, MAX_TRENDING_COUNT))
        url = f"https://{self.host}{TRENDING_PATH}"
        try:
            resp = await self.http.get(url, params={"count": count}, headers=self._headers())
        except httpx.HTTPError as exc:
            raise UpstreamFetchError(f"TikTok trending request failed: {exc}") from exc

        if resp.status_code >= 400:
            raise UpstreamFetchError(f"TikTok API error: {resp.status_code} - {resp.text[:300]}")
        if not resp.text.strip():
            raise UpstreamFetchError("Empty response from TikTok API")

        data = json_body(resp, "TikTok API")
        if data.get("statusCode", 0) != 0:
            raise UpstreamFetchError(f"TikTok API returned statusCode={data.get('statusCode')}")
        return data.get("itemList") or []

    async def fetch_post_detail(self, video_id: str) -> dict[str, Any] | None:
        """Return the itemStruct for a post, or None when the lookup is unusable."""
        url = f"https://{self.host}{POST_DETAIL_PATH}"
        try:
            resp = await self.http.get(url, params={"videoId": video_id}, headers=self._headers())
        except httpx.HTTPError as exc:
            raise UpstreamFetchError(f"TikTok post detail request failed: {exc}") from exc
        if resp.status_code >= 400:
            raise UpstreamFetchError(f"TikTok post detail error: {resp.status_code}")

        data = json_body(resp, "TikTok post detail")
        if data.get("statusCode") != 0:
            return None
        return (data.get("itemInfo") or {}).get("itemStruct")
