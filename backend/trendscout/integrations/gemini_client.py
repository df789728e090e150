"""
Gemini file API + generateContent client.

Files are uploaded with the resumable two-phase protocol:
1. POST upload/v1beta/files with X-Goog-Upload-Command: start -> X-Goog-Upload-URL
2. POST <upload url> with X-Goog-Upload-Command: upload, finalize -> {"file": {...}}
The remote file then moves PROCESSING -> ACTIVE and must be polled before use.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

import httpx

from trendscout.errors import InferenceCallFailed, UploadFailed
from trendscout.integrations.responses import json_body

logger = logging.getLogger(__name__)

GEMINI_UPLOAD_URL = "https://generativelanguage.googleapis.com/upload/v1beta/files"
GEMINI_API_BASE = "https://generativelanguage.googleapis.com/v1beta"

STATE_PROCESSING = "PROCESSING"
STATE_ACTIVE = "ACTIVE"
STATE_FAILED = "FAILED"


@dataclass
class GeminiFile:
    name: str
    uri: str
    mime_type: str
    state: str = STATE_PROCESSING


class GeminiClient:
    def __init__(
        self,
        http: httpx.AsyncClient,
        *,
        api_key: str | None,
        model: str,
        poll_interval_sec: float = 3.0,
        poll_max_attempts: int = 60,
    ):
        self.http = http
        self.api_key = api_key
        self.model = model
        self.poll_interval_sec = poll_interval_sec
        self.poll_max_attempts = poll_max_attempts

    def _params(self) -> dict[str, str]:
        if not self.api_key:
            raise InferenceCallFailed("GEMINI_API_KEY not configured")
        return {"key": self.api_key}

    async def upload_file(self, data: bytes, mime_type: str, display_name: str) -> GeminiFile:
        params = self._params()
        try:
            start = await self.http.post(
                GEMINI_UPLOAD_URL,
                params=params,
                headers={
                    "X-Goog-Upload-Protocol": "resumable",
                    "X-Goog-Upload-Command": "start",
                    "X-Goog-Upload-Header-Content-Length": str(len(data)),
                    "X-Goog-Upload-Header-Content-Type": mime_type,
                    "Content-Type": "application/json",
                },
                json={"file": {"display_name": display_name}},
            )
        except httpx.HTTPError as exc:
            raise UploadFailed(f"Upload start failed for {display_name}: {exc}") from exc

        upload_url = start.headers.get("X-Goog-Upload-URL")
        if start.status_code >= 400 or not upload_url:
            raise UploadFailed(f"Failed to get upload URL for {display_name} (status {start.status_code})")

        try:
            finalize = await self.http.post(
                upload_url,
                headers={
                    "Content-Length": str(len(data)),
                    "X-Goog-Upload-Offset": "0",
                    "X-Goog-Upload-Command": "upload, finalize",
                },
                content=data,
            )
        except httpx.HTTPError as exc:
            raise UploadFailed(f"Upload of {display_name} failed: {exc}") from exc
        if finalize.status_code >= 400:
            raise UploadFailed(f"Upload of {display_name} failed: {finalize.status_code} - {finalize.text[:300]}")

        file_data = json_body(finalize, f"Upload of {display_name}", error=UploadFailed).get("file") or {}
        if not file_data.get("name") or not file_data.get("uri"):
            raise UploadFailed(f"Upload of {display_name} returned no file handle")

        logger.info("[gemini] uploaded %s as %s", display_name, file_data["name"])
        return GeminiFile(
            name=file_data["name"],
            uri=file_data["uri"],
            mime_type=file_data.get("mimeType") or mime_type,
            state=file_data.get("state") or STATE_PROCESSING,
        )

    async def get_file_state(self, name: str) -> str:
        try:
            resp = await self.http.get(f"{GEMINI_API_BASE}/{name}", params=self._params())
        except httpx.HTTPError as exc:
            logger.warning("[gemini] state check for %s failed: %s", name, exc)
            return STATE_PROCESSING
        if resp.status_code >= 400:
            logger.warning("[gemini] state check for %s returned %s", name, resp.status_code)
            return STATE_PROCESSING
        try:
            data = json_body(resp, f"Gemini state check for {name}", error=UploadFailed)
        except UploadFailed as exc:
            logger.warning("[gemini] %s", exc.message)
            return STATE_PROCESSING
        return data.get("state") or STATE_PROCESSING

    async def wait_until_active(self, file: GeminiFile) -> str:
        """Poll until the file is ACTIVE or FAILED, or the attempt bound is reached.

        Returns the last observed state; the caller decides what a non-ACTIVE
        state means.
        """
        state = file.state
        attempts = 0
        while state not in (STATE_ACTIVE, STATE_FAILED) and attempts < self.poll_max_attempts:
            await asyncio.sleep(self.poll_interval_sec)
            state = await self.get_file_state(file.name)
            attempts += 1
            logger.debug("[gemini] %s state=%s (attempt %d/%d)", file.name, state, attempts, self.poll_max_attempts)
        file.state = state
        return state

    async def generate_content(
        self,
        prompt: str,
        files: list[GeminiFile],
        generation_config: dict[str, Any] | None = None,
    ) -> str:
        parts: list[dict[str, Any]] = [{"text": prompt}]
        for f in files:
            parts.append({"fileData": {"mimeType": f.mime_type, "fileUri": f.uri}})

        body: dict[str, Any] = {"contents": [{"parts": parts}]}
        if generation_config:
            body["generationConfig"] = generation_config

        url = f"{GEMINI_API_BASE}/models/{self.model}:generateContent"
        try:
            resp = await self.http.post(url, params=self._params(), json=body)
        except httpx.HTTPError as exc:
            raise InferenceCallFailed(f"Gemini request failed: {exc}") from exc
        if resp.status_code >= 400:
            raise InferenceCallFailed(f"Gemini API error: {resp.status_code} - {resp.text[:300]}")

        data = json_body(resp, "Gemini API", error=InferenceCallFailed)
        candidates = data.get("candidates") or []
        if not candidates:
            feedback = data.get("promptFeedback") or {}
            raise InferenceCallFailed(f"Gemini returned no candidates (blockReason={feedback.get('blockReason')})")
        content_parts = (candidates[0].get("content") or {}).get("parts") or []
        return "".join(p.get("text", "") for p in content_parts)

    async def delete_file(self, name: str) -> None:
        resp = await self.http.delete(f"{GEMINI_API_BASE}/{name}", params=self._params())
        if resp.status_code >= 400:
            raise InferenceCallFailed(f"Failed to delete {name}: {resp.status_code}")
