import copy

import pytest

from conftest import add_candidate, fake_translate
from trendscout.errors import NoAnalysisFound, ValidationError
from trendscout.integrations.translate_client import GoogleTranslateClient
from trendscout.services.translation_worker import TranslationWorker

TRANSLATE_URL = "translation.googleapis.com/language/translate/v2"

ANALYSIS = {
    "adaptation_score": 8,
    "original_concept": "Ein Konzept",
    "adaptation": {"core_mechanic": "Mechanik", "example_scenarios": ["Beispiel"]},
    "engagement_factors": ["Humor"],
}


def make_worker(session, settings, http):
    return TranslationWorker(
        session, settings, translator=GoogleTranslateClient(http, api_key=settings.google_translate_api_key)
    )


async def test_translation_goes_to_language_column(session, settings, upstream, http):
    upstream.on("POST", TRANSLATE_URL, fake_translate)
    candidate = await add_candidate(session, "123", gemini_analysis=copy.deepcopy(ANALYSIS), analysis_variant="trending")

    result = await make_worker(session, settings, http).translate("123", "en")

    assert result.translation["original_concept"] == "[en] Ein Konzept"
    assert result.translation["adaptation_score"] == 8
    await session.refresh(candidate)
    assert candidate.analysis_en == result.translation
    assert candidate.gemini_analysis == ANALYSIS
    assert candidate.analysis_de is None
    # one request per text leaf
    assert len(upstream.requests) == 4


async def test_retranslation_overwrites_only_that_language(session, settings, upstream, http):
    upstream.on("POST", TRANSLATE_URL, fake_translate)
    candidate = await add_candidate(session, "123", gemini_analysis=copy.deepcopy(ANALYSIS), analysis_variant="trending")
    worker = make_worker(session, settings, http)

    await worker.translate("123", "de")
    await worker.translate("123", "en")
    candidate.gemini_analysis = {**ANALYSIS, "original_concept": "Neues Konzept"}
    await session.commit()
    await worker.translate("123", "en")

    await session.refresh(candidate)
    assert candidate.analysis_en["original_concept"] == "[en] Neues Konzept"
    assert candidate.analysis_de["original_concept"] == "[de] Ein Konzept"


async def test_library_variant_flag(session, settings, upstream, http):
    upstream.on("POST", TRANSLATE_URL, fake_translate)
    await add_candidate(session, "123", gemini_analysis={"hook": "Haken", "shotlist": [{"scene": "Szene"}]})

    result = await make_worker(session, settings, http).translate("123", "en", is_trending=False)

    assert result.variant == "library"
    assert result.translation == {"hook": "[en] Haken", "shotlist": [{"scene": "[en] Szene"}]}


async def test_missing_analysis_fails_closed(session, settings, upstream, http):
    await add_candidate(session, "123")
    with pytest.raises(NoAnalysisFound):
        await make_worker(session, settings, http).translate("123", "en")
    assert upstream.requests == []


async def test_unsupported_language(session, settings, http):
    await add_candidate(session, "123", gemini_analysis=ANALYSIS)
    with pytest.raises(ValidationError):
        await make_worker(session, settings, http).translate("123", "fr")
