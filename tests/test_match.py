import json

import pytest

from academialink.errors import GenerationError
from academialink.services import match_service


def test_partial_field_overlap():
    scores = match_service.component_scores(
        {"research_fields": ["nlp", "vision"]},
        {"tags": ["nlp", "robotics"]},
    )
    assert scores["fields"] == 10


def test_post_without_tags_gets_full_credit():
    scores = match_service.component_scores({"research_fields": ["nlp"]}, {"tags": []})
    assert scores["fields"] == 20


def test_empty_profile_scores_zero():
    scores = match_service.component_scores({}, {"tags": ["nlp"], "methods": ["rl"], "tools": ["jax"]})
    assert scores == {"fields": 0, "methods": 0, "tools": 0}


def test_matching_is_case_insensitive():
    assert match_service.keyword_overlap(["PyTorch"], ["pytorch", "jax"]) == 0.5


def test_keyword_score_is_rounded_total():
    profile = {"research_fields": ["nlp"], "methods": ["rl"], "tools": ["jax"]}
    post = {"tags": ["nlp", "cv", "robotics"], "methods": ["rl"], "tools": []}
    # 20/3 + 10 + 10
    assert match_service.keyword_score(profile, post) == 27


def _install_tool(monkeypatch, arguments=None, exc=None):
    async def fake_call_tool(messages, tool, **kwargs):
        if exc:
            raise exc
        return arguments

    monkeypatch.setattr(match_service, "call_tool", fake_call_tool)


async def test_model_cannot_override_keyword_score(monkeypatch):
    _install_tool(monkeypatch, json.dumps({
        "keyword_score": 40, "skills_score": 25, "proximity_score": 50,
        "llm_score": 8, "overall_score": 73, "reason": "Strong fit",
    }))
    result = await match_service.score_match(
        {"research_fields": ["nlp", "vision"]},
        {"tags": ["nlp", "robotics"]},
    )

    assert result.keyword_score == 30
    assert result.skills_score == 25
    assert result.proximity_score == 20
    assert result.overall_score == 73
    assert result.reason == "Strong fit"


async def test_missing_overall_is_summed(monkeypatch):
    _install_tool(monkeypatch, json.dumps({
        "skills_score": 10, "proximity_score": 5, "llm_score": 5, "reason": "ok",
    }))
    result = await match_service.score_match({}, {})
    assert result.overall_score == 40 + 10 + 5 + 5


@pytest.mark.parametrize("arguments, exc", [
    (None, GenerationError("down")),
    ("{broken", None),
    ("[1, 2]", None),
])
async def test_model_failure_falls_back_to_keywords(monkeypatch, arguments, exc):
    _install_tool(monkeypatch, arguments, exc)
    result = await match_service.score_match({"research_fields": ["nlp"]}, {"tags": ["nlp", "cv"]})

    assert result.keyword_score == 30
    assert result.overall_score == 30
    assert result.skills_score == result.proximity_score == result.llm_score == 0
    assert "unavailable" in result.reason


def test_non_string_items_are_compared_as_text():
    assert match_service.keyword_overlap(["3", "NLP"], [3, "nlp", None]) == 1.0
    assert match_service.keyword_overlap([{"name": "nlp"}], ["nlp"]) == 0.0


def test_bare_string_is_one_item():
    assert match_service.keyword_overlap("nlp", ["nlp", "cv"]) == 0.5
    assert match_service.keyword_overlap(["nlp"], "NLP") == 1.0
