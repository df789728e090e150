from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from trendscout.errors import NoAnalysisFound, PersistFailed, ValidationError
from trendscout.integrations.translate_client import GoogleTranslateClient
from trendscout.models import AnalysisVariant
from trendscout.services.analysis_variants import translate_analysis
from trendscout.services.fetch_worker import load_candidate
from trendscout.settings import Settings

logger = logging.getLogger(__name__)

LANGUAGE_COLUMNS = {"en": "analysis_en", "de": "analysis_de"}
LANGUAGE_NAMES = {"en": "English", "de": "German"}


@dataclass
class TranslatedAnalysis:
    external_id: str
    target_lang: str
    variant: str
    translation: dict[str, Any]

    def as_dict(self) -> dict[str, Any]:
        return {
            "success": True,
            "candidateId": self.external_id,
            "targetLang": self.target_lang,
            "variant": self.variant,
            "message": f"Analysis translated to {LANGUAGE_NAMES.get(self.target_lang, self.target_lang)}",
            "translation": self.translation,
        }


class TranslationWorker:
    """Translates the stored analysis into a per-language column; the original is never touched."""

    def __init__(self, session: AsyncSession, settings: Settings, *, translator: GoogleTranslateClient):
        self.session = session
        self.settings = settings
        self.translator = translator

    async def translate(
        self,
        external_id: str,
        target_lang: str,
        is_trending: bool | None = None,
        platform: str | None = None,
    ) -> TranslatedAnalysis:
        target_lang = (target_lang or "").lower()
        column = LANGUAGE_COLUMNS.get(target_lang)
        if column is None or target_lang not in self.settings.translation_languages:
            raise ValidationError(f"Unsupported target language: {target_lang}")

        candidate = await load_candidate(self.session, external_id, platform)
        if not candidate.gemini_analysis:
            raise NoAnalysisFound(f"No Gemini analysis found for {external_id}")

        if is_trending is None:
            variant = AnalysisVariant(candidate.analysis_variant or AnalysisVariant.trending.value)
        else:
            variant = AnalysisVariant.trending if is_trending else AnalysisVariant.library

        async def _translate(text: str) -> str:
            return await self.translator.translate(text, target_lang)

        logger.info("[translate] %s -> %s (%s variant)", external_id, target_lang, variant.value)
        translation = await translate_analysis(variant, dict(candidate.gemini_analysis), _translate)

        setattr(candidate, column, translation)
        try:
            await self.session.commit()
        except SQLAlchemyError as exc:
            await self.session.rollback()
            raise PersistFailed(f"Failed to save translation for {external_id}: {exc}") from exc

        return TranslatedAnalysis(
            external_id=candidate.external_id,
            target_lang=target_lang,
            variant=variant.value,
            translation=translation,
        )
