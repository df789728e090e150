"""
Per-variant translation of stored analysis payloads.

Two payload shapes exist:
- trending: produced by the analysis worker for discovered candidates
  (adaptation score, concept, reapplication guidance, shot-list template).
- library: the older per-video analysis (hook, content type, visual style,
  shot list, engagement factors).

Only known text leaves are sent to the translator, one call per string or list
element. Numbers, booleans and unknown keys are copied unchanged.
"""
from __future__ import annotations

from typing import Any, Awaitable, Callable

from trendscout.models import AnalysisVariant

TranslateFn = Callable[[str], Awaitable[str]]

TRENDING_TEXT_FIELDS = ("original_concept", "why_it_went_viral")
TRENDING_LIST_FIELDS = (
    "target_topics",
    "best_song_topics",
    "production_requirements",
    "engagement_factors",
    "shotlist_template",
)
TRENDING_ADAPTATION_KEYS = ("adaptation", "music_adaptation")
ADAPTATION_TEXT_FIELDS = ("core_mechanic", "how_to_flip")
ADAPTATION_LIST_FIELDS = ("example_scenarios",)

LIBRARY_TEXT_FIELDS = ("hook", "content_type", "visual_style")
LIBRARY_SHOT_FIELDS = ("scene", "action", "description")


async def _translate_list(values: Any, translate: TranslateFn) -> Any:
    if not isinstance(values, list):
        return values
    out = []
    for value in values:
        out.append(await translate(value) if isinstance(value, str) else value)
    return out


async def _translate_fields(
    source: dict[str, Any],
    translate: TranslateFn,
    text_fields: tuple[str, ...],
    list_fields: tuple[str, ...] = (),
) -> dict[str, Any]:
    out = dict(source)
    for key in text_fields:
        if isinstance(source.get(key), str):
            out[key] = await translate(source[key])
    for key in list_fields:
        if key in source:
            out[key] = await _translate_list(source[key], translate)
    return out


async def _translate_raw_fallback(analysis: dict[str, Any], translate: TranslateFn) -> dict[str, Any]:
    return await _translate_fields(analysis, translate, ("raw_analysis",))


async def translate_trending(analysis: dict[str, Any], translate: TranslateFn) -> dict[str, Any]:
    if "raw_analysis" in analysis:
        return await _translate_raw_fallback(analysis, translate)

    out = await _translate_fields(analysis, translate, TRENDING_TEXT_FIELDS, TRENDING_LIST_FIELDS)
    for key in TRENDING_ADAPTATION_KEYS:
        block = analysis.get(key)
        if isinstance(block, dict):
            out[key] = await _translate_fields(block, translate, ADAPTATION_TEXT_FIELDS, ADAPTATION_LIST_FIELDS)
    return out


async def _translate_shot(shot: Any, translate: TranslateFn) -> Any:
    if isinstance(shot, str):
        return await translate(shot)
    if isinstance(shot, dict):
        return await _translate_fields(shot, translate, LIBRARY_SHOT_FIELDS)
    return shot


async def translate_library(analysis: dict[str, Any], translate: TranslateFn) -> dict[str, Any]:
    if "raw_analysis" in analysis:
        return await _translate_raw_fallback(analysis, translate)

    out = await _translate_fields(analysis, translate, LIBRARY_TEXT_FIELDS, ("engagement_factors",))
    shotlist = analysis.get("shotlist")
    if isinstance(shotlist, list):
        out["shotlist"] = [await _translate_shot(shot, translate) for shot in shotlist]
    return out


TRANSLATORS: dict[AnalysisVariant, Callable[[dict[str, Any], TranslateFn], Awaitable[dict[str, Any]]]] = {
    AnalysisVariant.trending: translate_trending,
    AnalysisVariant.library: translate_library,
}


async def translate_analysis(
    variant: AnalysisVariant, analysis: dict[str, Any], translate: TranslateFn
) -> dict[str, Any]:
    return await TRANSLATORS[variant](analysis, translate)
