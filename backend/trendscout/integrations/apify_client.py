from __future__ import annotations

import asyncio
from typing import Any

import httpx

from trendscout.errors import UpstreamFetchError
from trendscout.integrations.manifest import MediaManifest
from trendscout.integrations.responses import json_body

APIFY_RUN_URL = "https://api.apify.com/v2/acts/{actor_id}/run-sync-get-dataset-items"

ACTOR_INSTAGRAM_HASHTAG = "apify/instagram-hashtag-scraper"
ACTOR_INSTAGRAM_POST = "apify/instagram-scraper"


def _normalize_actor_id(actor_id: str) -> str:
    """Apify expects username~actor-name."""
    if "~" in actor_id:
        return actor_id
    if "/" in actor_id:
        return actor_id.replace("/", "~", 1)
    return actor_id


class ApifyClient:
    def __init__(self, http: httpx.AsyncClient, *, token: str | None, retry_delay_s: float = 1.0):
        self.http = http
        self.token = token
        self.retry_delay_s = retry_delay_s

    async def run_actor_get_items(self, actor_id: str, payload: dict[str, Any], timeout_s: int = 120) -> list[dict]:
        if not self.token:
            raise UpstreamFetchError("APIFY_TOKEN is not configured")

        normalized_id = _normalize_actor_id(actor_id)
        url = APIFY_RUN_URL.format(actor_id=normalized_id)
        params = {"token": self.token}

        last_exc: Exception | None = None
        for _attempt in range(2):
            try:
                resp = await self.http.post(url, params=params, json=payload, timeout=timeout_s)
            except httpx.HTTPError as exc:
                last_exc = exc
                await asyncio.sleep(self.retry_delay_s)
                continue
            if resp.status_code >= 400:
                raise UpstreamFetchError(
                    f"Apify actor {normalized_id} failed: {resp.status_code} - {resp.text[:300]}"
                )
            data = json_body(resp, f"Apify actor {normalized_id}", expect=(list, dict))
            items = data if isinstance(data, list) else data.get("items") or data.get("data") or []
            return items
        raise UpstreamFetchError(f"Apify request failed: {last_exc}")


class InstagramClient:
    """Instagram discovery and media lookup on top of Apify scrapers."""

    def __init__(self, apify: ApifyClient):
        self.apify = apify

    async def fetch_hashtag_posts(self, hashtags: list[str], limit: int) -> list[dict[str, Any]]:
        payload = {"hashtags": [h.lstrip("#") for h in hashtags], "resultsLimit": limit}
        items = await self.apify.run_actor_get_items(ACTOR_INSTAGRAM_HASHTAG, payload)
        return items[:limit]

    async def resolve(self, source_url: str) -> MediaManifest:
        payload = {"directUrls": [source_url], "resultsType": "posts", "resultsLimit": 1}
        items = await self.apify.run_actor_get_items(ACTOR_INSTAGRAM_POST, payload)
        if not items:
            raise UpstreamFetchError(f"Instagram lookup returned no post for {source_url}")
        return manifest_from_instagram_item(items[0])


def manifest_from_instagram_item(item: dict[str, Any]) -> MediaManifest:
    thumbnail = item.get("displayUrl")
    if item.get("videoUrl"):
        return MediaManifest(is_photo_post=False, video_url=item["videoUrl"], thumbnail_url=thumbnail)

    images = [u for u in (item.get("images") or []) if u]
    if not images:
        images = [c.get("displayUrl") for c in (item.get("childPosts") or []) if c.get("displayUrl")]
    if not images and thumbnail:
        images = [thumbnail]
    if not images:
        raise UpstreamFetchError("Instagram lookup returned no media URLs")
    return MediaManifest(is_photo_post=True, image_urls=images, thumbnail_url=thumbnail)
