from __future__ import annotations

from typing import Any

import httpx

from trendscout.errors import UpstreamFetchError
from trendscout.integrations.responses import json_body

GOOGLE_TRANSLATE_URL = "https://translation.googleapis.com/language/translate/v2"


class GoogleTranslateClient:
    """Google Cloud Translation v2, one string per request."""

    def __init__(self, http: httpx.AsyncClient, *, api_key: str | None):
        self.http = http
        self.api_key = api_key

    async def translate(self, text: Any, target_lang: str) -> str:
        text = text if isinstance(text, str) else str(text)
        if not text.strip():
            return text
        if not self.api_key:
            raise UpstreamFetchError("GOOGLE_TRANSLATE_API_KEY not configured")

        try:
            resp = await self.http.post(
                GOOGLE_TRANSLATE_URL,
                params={"key": self.api_key},
                json={"q": text, "target": target_lang, "format": "text"},
            )
        except httpx.HTTPError as exc:
            raise UpstreamFetchError(f"Translation request failed: {exc}") from exc
        if resp.status_code >= 400:
            raise UpstreamFetchError(f"Translation API error: {resp.status_code} - {resp.text[:300]}")

        translations = (json_body(resp, "Translation API").get("data") or {}).get("translations") or []
        if not translations:
            raise UpstreamFetchError("Translation API returned no translations")
        translated = translations[0].get("translatedText") if isinstance(translations[0], dict) else None
        if translated is None:
            raise UpstreamFetchError("Translation API returned no translatedText")
        return translated
