"""
Pipeline stage endpoints.

Each call runs its stage synchronously and returns the stage result; errors are
rendered by the PipelineError handler in main.py as {"error": message}.
"""
from __future__ import annotations

from fastapi import APIRouter
from sqlalchemy.ext.asyncio import AsyncSession

from .deps import PipelineDep, SessionDep
from .schemas import AnalyzeRequest, CandidateOut, FetchRequest, IngestRequest, TranslateRequest
from .services.fetch_worker import load_candidate
from .services.pipeline import Pipeline

router = APIRouter(tags=["pipeline"])


def _platform(value) -> str | None:
    return value.value if value is not None else None


@router.post("/ingest")
async def ingest(payload: IngestRequest, pipeline: Pipeline = PipelineDep):
    report = await pipeline.discovery.discover(payload.limit, payload.platform)
    return report.as_dict()


@router.post("/fetch")
async def fetch(payload: FetchRequest, pipeline: Pipeline = PipelineDep):
    result = await pipeline.fetcher.fetch(payload.candidate_id, _platform(payload.platform))
    return result.as_dict()


@router.post("/analyze")
async def analyze(payload: AnalyzeRequest, pipeline: Pipeline = PipelineDep):
    result = await pipeline.analyzer.analyze(payload.candidate_id, _platform(payload.platform))
    return result.as_dict()


@router.post("/translate")
async def translate(payload: TranslateRequest, pipeline: Pipeline = PipelineDep):
    result = await pipeline.translator.translate(
        payload.candidate_id,
        payload.target_lang,
        payload.is_trending,
        _platform(payload.platform),
    )
    return result.as_dict()


@router.get("/candidates/{external_id}", response_model=CandidateOut)
async def get_candidate(external_id: str, platform: str | None = None, session: AsyncSession = SessionDep):
    candidate = await load_candidate(session, external_id, platform)
    return CandidateOut.model_validate(candidate)
