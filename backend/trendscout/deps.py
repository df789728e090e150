from __future__ import annotations

import secrets
from typing import AsyncIterator

import httpx
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from .db import get_session
from .errors import Unauthorized
from .integrations.media_storage import MediaStorage, build_media_storage
from .services.pipeline import Pipeline, build_http_client, build_pipeline
from .settings import Settings, get_settings

security = HTTPBearer(auto_error=False)

SessionDep = Depends(get_session)
SettingsDep = Depends(get_settings)


async def get_http_client(settings: Settings = SettingsDep) -> AsyncIterator[httpx.AsyncClient]:
    async with build_http_client(settings) as client:
        yield client


def get_media_storage(settings: Settings = SettingsDep) -> MediaStorage:
    return build_media_storage(settings)


def get_pipeline(
    session: AsyncSession = SessionDep,
    settings: Settings = SettingsDep,
    http: httpx.AsyncClient = Depends(get_http_client),
    storage: MediaStorage = Depends(get_media_storage),
) -> Pipeline:
    return build_pipeline(session, settings, http, storage=storage)


PipelineDep = Depends(get_pipeline)


async def require_service_token(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    settings: Settings = SettingsDep,
) -> None:
    """Bearer check for queue management; open when SERVICE_TOKEN is unset."""
    if not settings.service_token:
        return
    if credentials is None or not secrets.compare_digest(credentials.credentials, settings.service_token):
        raise Unauthorized("Missing or invalid service token")
