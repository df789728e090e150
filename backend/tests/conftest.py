from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

import httpx
import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from trendscout.db import Base
from trendscout.integrations.media_storage import LocalMediaStorage
from trendscout.models import Candidate, ProcessingStatus
from trendscout.settings import Settings

MEDIA_BASE_URL = "http://media.test/files/media"

Handler = Callable[[httpx.Request], httpx.Response]


def json_response(data: Any, status: int = 200, headers: dict[str, str] | None = None) -> Handler:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status, json=data, headers=headers)
    return handler


def bytes_response(content: bytes, content_type: str, status: int = 200) -> Handler:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status, content=content, headers={"content-type": content_type})
    return handler


def status_response(status: int, text: str = "") -> Handler:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status, text=text)
    return handler


class FakeUpstream:
    """Routes requests by method and host+path; a trailing * matches a prefix."""

    def __init__(self):
        self.routes: list[tuple[str, str, Handler]] = []
        self.requests: list[httpx.Request] = []

    def on(self, method: str, url: str, handler: Handler) -> None:
        # newest registration wins
        self.routes.insert(0, (method.upper(), url, handler))

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        target = f"{request.url.host}{request.url.path}"
        for method, url, handler in self.routes:
            if method != request.method:
                continue
            if url.endswith("*") and target.startswith(url[:-1]):
                return handler(request)
            if target == url:
                return handler(request)
        return httpx.Response(404, text=f"no route for {request.method} {target}")

    def calls(self, method: str, url: str) -> list[httpx.Request]:
        out = []
        for r in self.requests:
            target = f"{r.url.host}{r.url.path}"
            matched = target.startswith(url[:-1]) if url.endswith("*") else target == url
            if r.method == method.upper() and matched:
                out.append(r)
        return out


class FakeGemini:
    """Gemini file API + generateContent double."""

    UPLOAD_HOST = "upload.gemini.test"

    def __init__(self, upstream: FakeUpstream, *, model: str = "gemini-2.0-flash"):
        self.answer = '```json\n{"adaptation_score": 8, "original_concept": "Ein Konzept"}\n```'
        self.state = "ACTIVE"
        self.generate_status = 200
        self.uploaded: list[str] = []
        self.deleted: list[str] = []
        self._counter = 0

        upstream.on("POST", "generativelanguage.googleapis.com/upload/v1beta/files", self._start)
        upstream.on("POST", f"{self.UPLOAD_HOST}/session/*", self._finalize)
        upstream.on("GET", "generativelanguage.googleapis.com/v1beta/files/*", self._state)
        upstream.on("DELETE", "generativelanguage.googleapis.com/v1beta/files/*", self._delete)
        upstream.on(
            "POST",
            f"generativelanguage.googleapis.com/v1beta/models/{model}:generateContent",
            self._generate,
        )

    def _start(self, request: httpx.Request) -> httpx.Response:
        assert request.headers["X-Goog-Upload-Command"] == "start"
        self._counter += 1
        return httpx.Response(
            200, json={}, headers={"X-Goog-Upload-URL": f"https://{self.UPLOAD_HOST}/session/{self._counter}"}
        )

    def _finalize(self, request: httpx.Request) -> httpx.Response:
        assert request.headers["X-Goog-Upload-Command"] == "upload, finalize"
        n = request.url.path.rsplit("/", 1)[-1]
        name = f"files/upload-{n}"
        self.uploaded.append(name)
        return httpx.Response(200, json={"file": {
            "name": name,
            "uri": f"https://generativelanguage.googleapis.com/v1beta/{name}",
            "state": "PROCESSING",
        }})

    def _state(self, request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"state": self.state})

    def _delete(self, request: httpx.Request) -> httpx.Response:
        self.deleted.append(request.url.path.removeprefix("/v1beta/"))
        return httpx.Response(200, json={})

    def _generate(self, request: httpx.Request) -> httpx.Response:
        if self.generate_status != 200:
            return httpx.Response(self.generate_status, text="model overloaded")
        return httpx.Response(200, json={"candidates": [{"content": {"parts": [{"text": self.answer}]}}]})


def fake_translate(request: httpx.Request) -> httpx.Response:
    body = json.loads(request.content)
    return httpx.Response(200, json={
        "data": {"translations": [{"translatedText": f"[{body['target']}] {body['q']}"}]}
    })


def ticker(start: datetime | None = None) -> Callable[[], datetime]:
    """Clock advancing one second per call."""
    current = [start or datetime(2026, 10, 1, 12, 0, tzinfo=timezone.utc)]

    def now() -> datetime:
        current[0] = current[0] + timedelta(seconds=1)
        return current[0]
    return now


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        media_dir=str(tmp_path / "media"),
        media_public_base_url=MEDIA_BASE_URL,
        storage_backend="local",
        rapidapi_key="rapid-key",
        apify_token="apify-token",
        gemini_api_key="gemini-key",
        google_translate_api_key="translate-key",
        gemini_poll_interval_sec=0,
        gemini_poll_max_attempts=3,
        scheduler_enabled=False,
        service_token=None,
        telegram_bot_token=None,
        telegram_chat_id=None,
    )


@pytest.fixture
async def engine(settings):
    engine = create_async_engine(settings.async_database_url)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture
async def http(upstream):
    async with httpx.AsyncClient(transport=httpx.MockTransport(upstream)) as client:
        yield client


@pytest.fixture
def storage(settings) -> LocalMediaStorage:
    return LocalMediaStorage(settings.media_dir, settings.media_public_base_url)


@pytest.fixture
def gemini(upstream) -> FakeGemini:
    return FakeGemini(upstream)


async def add_candidate(session, external_id: str = "123", **overrides) -> Candidate:
    values: dict[str, Any] = {
        "platform": "tiktok",
        "external_id": external_id,
        "source_url": f"https://www.tiktok.com/@creator/video/{external_id}",
        "title": "Trending #dance",
        "account_username": "creator",
        "hashtags": ["dance"],
        "thumbnail_url": f"https://cdn.test/{external_id}/cover.jpg",
        "creator_avatar_url": "https://cdn.test/avatar.jpg",
        "processing_status": ProcessingStatus.pending.value,
    }
    values.update(overrides)
    candidate = Candidate(**values)
    session.add(candidate)
    await session.commit()
    return candidate
