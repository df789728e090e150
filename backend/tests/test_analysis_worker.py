import json

import pytest
from sqlalchemy import select

from conftest import add_candidate, bytes_response
from trendscout.errors import InferenceCallFailed, MediaNotReady, NotFound, ProcessingTimeout, UploadFailed
from trendscout.integrations.gemini_client import GeminiClient
from trendscout.models import PipelineJob
from trendscout.services.analysis_parsing import PARSE_ERROR_MARKER
from trendscout.services.analysis_worker import AnalysisWorker

GENERATE_URL = "generativelanguage.googleapis.com/v1beta/models/gemini-2.0-flash:generateContent"


def make_worker(session, settings, http):
    gemini = GeminiClient(
        http,
        api_key=settings.gemini_api_key,
        model=settings.gemini_model,
        poll_interval_sec=settings.gemini_poll_interval_sec,
        poll_max_attempts=settings.gemini_poll_max_attempts,
    )
    return AnalysisWorker(session, settings, http=http, gemini=gemini)


async def add_fetched_video(session, upstream, external_id="123"):
    upstream.on("GET", f"media.test/files/media/{external_id}.mp4", bytes_response(b"mp4", "video/mp4"))
    return await add_candidate(
        session,
        external_id,
        processing_status="completed",
        video_url=f"http://media.test/files/media/{external_id}.mp4",
    )


async def add_fetched_photos(session, upstream, external_id="555", count=2):
    urls = []
    for i in range(count):
        upstream.on("GET", f"media.test/files/media/{external_id}-{i}.jpg", bytes_response(b"jpg", "image/jpeg"))
        urls.append(f"http://media.test/files/media/{external_id}-{i}.jpg")
    return await add_candidate(
        session, external_id, processing_status="completed", is_photo_post=True, image_urls=urls
    )


async def test_high_score_marks_candidate_adaptable(session, settings, upstream, http, gemini):
    candidate = await add_fetched_video(session, upstream)
    gemini.answer = '```json\n{"adaptation_score": 8, "original_concept": "Konzept"}\n```'

    result = await make_worker(session, settings, http).analyze("123")

    assert result.adaptation_score == 8
    assert result.is_adaptable is True
    await session.refresh(candidate)
    assert candidate.gemini_analysis == {"adaptation_score": 8, "original_concept": "Konzept"}
    assert candidate.analysis_variant == "trending"
    assert candidate.gemini_analyzed_at is not None
    assert candidate.is_adaptable is True
    assert gemini.deleted == gemini.uploaded == ["files/upload-1"]

    job = await session.scalar(select(PipelineJob))
    assert (job.job_type, job.target_lang, job.status) == ("translate", "en", "pending")

    body = json.loads(upstream.calls("POST", GENERATE_URL)[0].content)
    assert body["generationConfig"]["maxOutputTokens"] == 3072
    assert body["contents"][0]["parts"][1]["fileData"]["mimeType"] == "video/mp4"
    assert "German" in body["contents"][0]["parts"][0]["text"]


async def test_low_score_is_not_adaptable(session, settings, upstream, http, gemini):
    candidate = await add_fetched_video(session, upstream)
    gemini.answer = '{"adaptation_score": 6}'

    await make_worker(session, settings, http).analyze("123")

    await session.refresh(candidate)
    assert candidate.adaptation_score == 6
    assert candidate.is_adaptable is False


async def test_legacy_score_key_is_accepted(session, settings, upstream, http, gemini):
    candidate = await add_fetched_video(session, upstream)
    gemini.answer = '{"music_adaptation_score": 7}'

    await make_worker(session, settings, http).analyze("123")

    await session.refresh(candidate)
    assert candidate.adaptation_score == 7
    assert candidate.is_adaptable is True


async def test_unparseable_answer_is_stored_raw(session, settings, upstream, http, gemini):
    candidate = await add_fetched_video(session, upstream)
    gemini.answer = "I think this video is great."

    result = await make_worker(session, settings, http).analyze("123")

    assert result.adaptation_score is None
    await session.refresh(candidate)
    assert candidate.gemini_analysis == {"raw_analysis": "I think this video is great.", "error": PARSE_ERROR_MARKER}
    assert candidate.adaptation_score is None
    assert candidate.is_adaptable is None


async def test_photo_set_uploads_every_slide(session, settings, upstream, http, gemini):
    await add_fetched_photos(session, upstream, count=3)

    await make_worker(session, settings, http).analyze("555")

    assert len(gemini.uploaded) == 3
    assert sorted(gemini.deleted) == sorted(gemini.uploaded)
    body = json.loads(upstream.calls("POST", GENERATE_URL)[0].content)
    parts = body["contents"][0]["parts"]
    assert [p["fileData"]["mimeType"] for p in parts[1:]] == ["image/jpeg"] * 3


@pytest.mark.parametrize("status", ["pending", "processing", "failed"])
async def test_media_not_ready(session, settings, http, status):
    await add_candidate(session, "123", processing_status=status)
    with pytest.raises(MediaNotReady):
        await make_worker(session, settings, http).analyze("123")


async def test_completed_without_media_is_not_ready(session, settings, http):
    await add_candidate(session, "123", processing_status="completed", is_photo_post=True, image_urls=[])
    with pytest.raises(MediaNotReady):
        await make_worker(session, settings, http).analyze("123")


async def test_unknown_candidate(session, settings, http):
    with pytest.raises(NotFound):
        await make_worker(session, settings, http).analyze("missing")


async def test_video_poll_timeout_aborts_and_cleans_up(session, settings, upstream, http, gemini):
    candidate = await add_fetched_video(session, upstream)
    gemini.state = "PROCESSING"

    with pytest.raises(ProcessingTimeout):
        await make_worker(session, settings, http).analyze("123")

    assert gemini.deleted == ["files/upload-1"]
    assert upstream.calls("POST", GENERATE_URL) == []
    await session.refresh(candidate)
    assert candidate.gemini_analysis is None


async def test_photo_poll_timeout_is_strict_by_default(session, settings, upstream, http, gemini):
    await add_fetched_photos(session, upstream)
    gemini.state = "PROCESSING"

    with pytest.raises(ProcessingTimeout):
        await make_worker(session, settings, http).analyze("555")


async def test_photo_poll_timeout_lenient_setting(session, settings, upstream, http, gemini):
    candidate = await add_fetched_photos(session, upstream)
    gemini.state = "PROCESSING"
    lenient = settings.model_copy(update={"analysis_photo_timeout_lenient": True})

    await make_worker(session, lenient, http).analyze("555")

    await session.refresh(candidate)
    assert candidate.adaptation_score == 8


async def test_failed_file_state_aborts(session, settings, upstream, http, gemini):
    await add_fetched_video(session, upstream)
    gemini.state = "FAILED"

    with pytest.raises(ProcessingTimeout, match="FAILED"):
        await make_worker(session, settings, http).analyze("123")


async def test_inference_error_still_deletes_uploads(session, settings, upstream, http, gemini):
    candidate = await add_fetched_video(session, upstream)
    gemini.generate_status = 503

    with pytest.raises(InferenceCallFailed):
        await make_worker(session, settings, http).analyze("123")

    assert gemini.deleted == ["files/upload-1"]
    await session.refresh(candidate)
    assert candidate.gemini_analysis is None
    assert await session.scalar(select(PipelineJob)) is None


HTML_PAGE = bytes_response(b"<html>rate limited</html>", "text/html")


async def test_unreadable_model_answer_is_inference_failure(session, settings, upstream, http, gemini):
    candidate = await add_fetched_video(session, upstream)
    upstream.on("POST", GENERATE_URL, HTML_PAGE)

    with pytest.raises(InferenceCallFailed, match="non-JSON"):
        await make_worker(session, settings, http).analyze("123")

    assert gemini.deleted == gemini.uploaded == ["files/upload-1"]
    await session.refresh(candidate)
    assert candidate.gemini_analysis is None


async def test_unreadable_upload_reply_is_upload_failure(session, settings, upstream, http, gemini):
    await add_fetched_photos(session, upstream, count=2)
    upstream.on("POST", "upload.gemini.test/session/2", HTML_PAGE)

    with pytest.raises(UploadFailed):
        await make_worker(session, settings, http).analyze("555")

    assert gemini.uploaded == ["files/upload-1"]
    assert gemini.deleted == ["files/upload-1"]
