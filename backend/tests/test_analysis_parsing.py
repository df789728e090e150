import pytest

from trendscout.services.analysis_parsing import (
    PARSE_ERROR_MARKER,
    extract_score,
    is_adaptable,
    parse_analysis_text,
)


def test_parses_json_fenced_block():
    text = 'Here you go:\n```json\n{"adaptation_score": 8, "original_concept": "x"}\n```\nthanks'
    assert parse_analysis_text(text) == {"adaptation_score": 8, "original_concept": "x"}


def test_parses_bare_fence():
    text = '```\n{"adaptation_score": 3}\n```'
    assert parse_analysis_text(text) == {"adaptation_score": 3}


def test_parses_plain_json():
    assert parse_analysis_text('{"a": [1, 2]}') == {"a": [1, 2]}


def test_parses_json_wrapped_in_prose():
    text = 'Sure! The analysis is {"adaptation_score": 5, "adaptation": {"core_mechanic": "m"}} hope it helps'
    assert parse_analysis_text(text)["adaptation"] == {"core_mechanic": "m"}


def test_unparseable_text_is_kept_verbatim():
    text = "The video is funny but I cannot produce JSON."
    parsed = parse_analysis_text(text)
    assert parsed == {"raw_analysis": text, "error": PARSE_ERROR_MARKER}


def test_top_level_array_is_not_an_analysis():
    parsed = parse_analysis_text("[1, 2, 3]")
    assert parsed["error"] == PARSE_ERROR_MARKER


@pytest.mark.parametrize(
    "analysis, expected",
    [
        ({"adaptation_score": 8}, 8.0),
        ({"adaptation_score": 6.5}, 6.5),
        ({"adaptation_score": "7"}, 7.0),
        ({"music_adaptation_score": 9}, 9.0),
        ({"adaptation_score": "high"}, None),
        ({"adaptation_score": True}, None),
        ({"adaptation_score": "high", "music_adaptation_score": 8}, 8.0),
        ({"adaptation_score": False, "music_adaptation_score": "6"}, 6.0),
        ({"raw_analysis": "x", "error": PARSE_ERROR_MARKER}, None),
    ],
)
def test_extract_score(analysis, expected):
    assert extract_score(analysis) == expected


def test_threshold_is_inclusive():
    assert is_adaptable(7.0, 7) is True
    assert is_adaptable(6.99, 7) is False
    assert is_adaptable(None, 7) is None
