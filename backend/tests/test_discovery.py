import pytest
from sqlalchemy import func, select

from conftest import json_response
from trendscout.errors import UpstreamFetchError, ValidationError
from trendscout.integrations.apify_client import ApifyClient, InstagramClient
from trendscout.integrations.tiktok_api import TikTokTrendingClient
from trendscout.models import Candidate, JobType, PipelineJob
from trendscout.services.discovery import DiscoveryService, draft_from_tiktok_item, extract_hashtags

TRENDING_URL = "tiktok-api23.p.rapidapi.com/api/post/trending"


def tiktok_item(video_id: str, desc: str = "Watch this #dance #fyp") -> dict:
    return {
        "id": video_id,
        "desc": desc,
        "author": {"uniqueId": "creator", "nickname": "Creator", "avatarThumb": "https://cdn.test/avatar.jpg"},
        "authorStats": {"followerCount": 1200},
        "stats": {"diggCount": 10, "playCount": 100, "commentCount": 2, "shareCount": 3, "collectCount": 4},
        "video": {"cover": "https://cdn.test/cover.jpg", "duration": 15},
        "music": {"title": "original sound", "authorName": "Creator", "original": True},
    }


def make_service(session, settings, http):
    tiktok = TikTokTrendingClient(http, api_key=settings.rapidapi_key, host=settings.rapidapi_tiktok_host)
    instagram = InstagramClient(ApifyClient(http, token=settings.apify_token, retry_delay_s=0))
    return DiscoveryService(session, settings, tiktok=tiktok, instagram=instagram)


async def _count(session, model, *where):
    return await session.scalar(select(func.count()).select_from(model).where(*where))


def test_tiktok_item_mapping():
    draft = draft_from_tiktok_item(tiktok_item("123"))
    assert draft.external_id == "123"
    assert draft.source_url == "https://www.tiktok.com/@creator/video/123"
    assert draft.views == 100 and draft.likes == 10 and draft.collect_count == 4
    assert draft.hashtags == ["dance", "fyp"]
    assert draft.recommendation_source == "tiktok_trending_api"
    assert draft.is_original_sound is True


def test_missing_description_gets_default_title():
    draft = draft_from_tiktok_item(tiktok_item("9", desc=""))
    assert draft.title == "Trending Post"
    assert draft.hashtags == []


def test_extract_hashtags():
    assert extract_hashtags("a #one b #two_three #4") == ["one", "two_three", "4"]
    assert extract_hashtags(None) == []


async def test_discover_inserts_pending_candidates_and_fetch_jobs(session, settings, upstream, http):
    upstream.on("GET", TRENDING_URL, json_response({"statusCode": 0, "itemList": [tiktok_item("123"), tiktok_item("456")]}))

    report = await make_service(session, settings, http).discover(limit=10)

    assert (report.queued, report.skipped, report.failed) == (2, 0, 0)
    candidate = await session.scalar(select(Candidate).where(Candidate.external_id == "123"))
    assert candidate.processing_status == "pending"
    assert candidate.video_url is None
    jobs = (await session.execute(select(PipelineJob))).scalars().all()
    assert sorted(j.video_id for j in jobs) == ["123", "456"]
    assert {j.job_type for j in jobs} == {JobType.fetch.value}
    assert upstream.calls("GET", TRENDING_URL)[0].url.params["count"] == "10"


async def test_second_discovery_skips_known_ids(session, settings, upstream, http):
    upstream.on("GET", TRENDING_URL, json_response({"statusCode": 0, "itemList": [tiktok_item("123")]}))
    service = make_service(session, settings, http)
    await service.discover(limit=5)

    candidate = await session.scalar(select(Candidate).where(Candidate.external_id == "123"))
    candidate.title = "edited by operator"
    await session.commit()

    upstream.on("GET", TRENDING_URL, json_response({"statusCode": 0, "itemList": [tiktok_item("123", desc="new #desc")]}))
    report = await service.discover(limit=5)

    assert (report.queued, report.skipped) == (0, 1)
    assert await _count(session, Candidate, Candidate.external_id == "123") == 1
    assert await _count(session, PipelineJob) == 1
    await session.refresh(candidate)
    assert candidate.title == "edited by operator"


async def test_duplicate_ids_in_one_feed_are_inserted_once(session, settings, upstream, http):
    upstream.on("GET", TRENDING_URL, json_response({"statusCode": 0, "itemList": [tiktok_item("7"), tiktok_item("7")]}))

    report = await make_service(session, settings, http).discover(limit=5)

    assert (report.queued, report.skipped) == (1, 1)
    assert await _count(session, Candidate) == 1


async def test_items_without_identity_count_as_failed(session, settings, upstream, http):
    upstream.on("GET", TRENDING_URL, json_response({"statusCode": 0, "itemList": [{"desc": "no id"}, tiktok_item("1")]}))

    report = await make_service(session, settings, http).discover(limit=5)

    assert (report.queued, report.failed) == (1, 1)


async def test_feed_error_propagates(session, settings, upstream, http):
    upstream.on("GET", TRENDING_URL, json_response({"statusCode": 5, "itemList": []}))
    with pytest.raises(UpstreamFetchError):
        await make_service(session, settings, http).discover(limit=5)
    assert await _count(session, Candidate) == 0


async def test_invalid_limit_and_platform(session, settings, http):
    service = make_service(session, settings, http)
    with pytest.raises(ValidationError):
        await service.discover(limit=0)
    with pytest.raises(ValidationError):
        await service.discover(limit=5, platform="youtube")


async def test_instagram_discovery_via_apify(session, settings, upstream, http):
    upstream.on("POST", "api.apify.com/v2/acts/apify~instagram-hashtag-scraper/run-sync-get-dataset-items", json_response([
        {
            "id": "3301",
            "shortCode": "Cabc",
            "url": "https://www.instagram.com/p/Cabc/",
            "caption": "so good #reels",
            "likesCount": 50,
            "videoPlayCount": 900,
            "ownerUsername": "igcreator",
            "displayUrl": "https://ig.test/c.jpg",
        }
    ]))

    report = await make_service(session, settings, http).discover(limit=3, platform="instagram")

    assert report.queued == 1
    candidate = await session.scalar(select(Candidate).where(Candidate.platform == "instagram"))
    assert candidate.external_id == "3301"
    assert candidate.views == 900
    assert candidate.hashtags == ["reels"]
    job = await session.scalar(select(PipelineJob))
    assert (job.platform, job.job_type) == ("instagram", "fetch")
