from __future__ import annotations

import httpx

from trendscout.errors import UpstreamFetchError
from trendscout.integrations.manifest import MediaManifest
from trendscout.integrations.responses import json_body


class TikwmResolver:
    """Resolves a TikTok post URL to direct media URLs via tikwm.com."""

    def __init__(self, http: httpx.AsyncClient, *, api_url: str):
        self.http = http
        self.api_url = api_url

    async def resolve(self, source_url: str) -> MediaManifest:
        try:
            resp = await self.http.get(self.api_url, params={"url": source_url, "hd": 1})
        except httpx.HTTPError as exc:
            raise UpstreamFetchError(f"tikwm request failed: {exc}") from exc
        if resp.status_code >= 400:
            raise UpstreamFetchError(f"tikwm lookup failed: {resp.status_code}")

        payload = json_body(resp, "tikwm")
        data = payload.get("data") or {}
        if payload.get("code", 0) != 0 or not data:
            raise UpstreamFetchError(f"tikwm lookup failed: {payload.get('msg') or 'no data'}")

        author = data.get("author") or {}
        images = [u for u in (data.get("images") or []) if u]
        if images:
            return MediaManifest(
                is_photo_post=True,
                image_urls=images,
                thumbnail_url=data.get("cover"),
                avatar_url=author.get("avatar"),
            )

        video_url = data.get("hdplay") or data.get("play")
        if not video_url:
            raise UpstreamFetchError("No download URL available from tikwm.com")
        return MediaManifest(
            is_photo_post=False,
            video_url=video_url,
            thumbnail_url=data.get("cover"),
            avatar_url=author.get("avatar"),
        )
