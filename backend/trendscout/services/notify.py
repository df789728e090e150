"""
Notification service — Telegram alerts with throttle.

Config:
  TELEGRAM_BOT_TOKEN, TELEGRAM_CHAT_ID

Throttle: same (level, title) not sent more than once per 15 minutes.
"""
from __future__ import annotations

import logging
import time
from typing import Any, Callable

import httpx

from trendscout.settings import Settings

logger = logging.getLogger(__name__)

THROTTLE_SEC = 15 * 60  # 15 minutes

_throttle: dict[str, float] = {}


class Notifier:
    def __init__(
        self,
        settings: Settings,
        *,
        http: httpx.AsyncClient | None = None,
        monotonic: Callable[[], float] = time.monotonic,
        throttle: dict[str, float] | None = None,
    ):
        self.bot_token = settings.telegram_bot_token
        self.chat_id = settings.telegram_chat_id
        self.http = http
        self.monotonic = monotonic
        self._throttle = _throttle if throttle is None else throttle

    @property
    def configured(self) -> bool:
        return bool(self.bot_token and self.chat_id)

    def _should_send(self, key: str) -> bool:
        now = self.monotonic()
        last = self._throttle.get(key)
        if last is not None and now - last < THROTTLE_SEC:
            return False
        self._throttle[key] = now
        return True

    async def _post(self, client: httpx.AsyncClient, text: str) -> bool:
        url = f"https://api.telegram.org/bot{self.bot_token}/sendMessage"
        r = await client.post(url, json={
            "chat_id": self.chat_id,
            "text": text[:4000],
            "parse_mode": "HTML",
            "disable_web_page_preview": True,
        })
        if r.status_code == 200:
            return True
        logger.warning(f"[notify] Telegram API {r.status_code}: {r.text[:200]}")
        return False

    async def _send(self, text: str) -> bool:
        if not self.configured:
            logger.debug("[notify] Telegram not configured, skipping")
            return False
        try:
            if self.http is not None:
                return await self._post(self.http, text)
            async with httpx.AsyncClient(timeout=10) as client:
                return await self._post(client, text)
        except httpx.HTTPError as e:
            logger.warning(f"[notify] Telegram send failed: {e}")
        return False

    async def _notify(self, level: str, icon: str, title: str, payload: Any = None) -> bool:
        if not self._should_send(f"{level}:{title}"):
            logger.debug(f"[notify] throttled {level}: {title}")
            return False
        body = f"{icon} <b>{title}</b>"
        if payload:
            body += f"\n<pre>{str(payload)[:500]}</pre>"
        return await self._send(body)

    async def error(self, title: str, payload: Any = None) -> bool:
        """Send error-level alert (throttled by title)."""
        return await self._notify("error", "🔴", title, payload)

    async def warn(self, title: str, payload: Any = None) -> bool:
        """Send warning-level alert (throttled by title)."""
        return await self._notify("warn", "🟡", title, payload)
