"""
Profile <-> lab post match scoring.

The keyword component (0-40) is computed here, deterministically. The model
only scores skills (0-30), proximity (0-20) and an overall synthesis (0-10).
"""
import json
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

from ..errors import GenerationError
from ..logging_config import logger
from ..openai_client import call_tool

FIELDS_WEIGHT = 20
METHODS_WEIGHT = 10
TOOLS_WEIGHT = 10
KEYWORD_MAX = FIELDS_WEIGHT + METHODS_WEIGHT + TOOLS_WEIGHT
SKILLS_MAX = 30
PROXIMITY_MAX = 20
LLM_MAX = 10

MATCH_SCORE_TOOL = {
    "type": "function",
    "function": {
        "name": "return_match_score",
        "description": "Return the match score breakdown and explanation",
        "parameters": {
            "type": "object",
            "properties": {
                "keyword_score": {"type": "number", "description": "Calculated keyword overlap score (0-40)"},
                "skills_score": {"type": "number", "description": "Skills match score (0-30)"},
                "proximity_score": {"type": "number", "description": "Proximity and alignment score (0-20)"},
                "llm_score": {"type": "number", "description": "LLM synthesis score (0-10)"},
                "overall_score": {"type": "number", "description": "Final combined score (0-100)"},
                "reason": {"type": "string", "description": "Brief explanation of the score"},
            },
            "required": ["keyword_score", "skills_score", "proximity_score",
                         "llm_score", "overall_score", "reason"],
            "additionalProperties": False,
        },
    },
}


@dataclass
class MatchScore:
    keyword_score: int
    skills_score: float
    proximity_score: float
    llm_score: float
    overall_score: float
    reason: str


def _normalize_items(items: Any) -> List[str]:
    """Lower-cased, trimmed string items; client JSON may hold a bare string or numbers."""
    if items is None:
        return []
    if isinstance(items, (str, int, float)):
        items = [items]
    elif not isinstance(items, (list, tuple, set)):
        return []
    out = []
    for item in items:
        if item is None or isinstance(item, (dict, list)):
            continue
        text = str(item).strip().lower()
        if text:
            out.append(text)
    return out


def keyword_overlap(profile_items: Optional[Iterable[str]], post_items: Optional[Iterable[str]]) -> float:
    """
    Fraction of the post's items present (case-insensitive) in the profile's items.
    A post with no items is fully satisfied; an empty profile scores 0.
    """
    post_list = _normalize_items(post_items)
    if not post_list:
        return 1.0
    profile_set = set(_normalize_items(profile_items))
    if not profile_set:
        return 0.0
    matches = [i for i in post_list if i in profile_set]
    return len(matches) / len(post_list)


def component_scores(profile: Dict[str, Any], post: Dict[str, Any]) -> Dict[str, float]:
    return {
        "fields": keyword_overlap(profile.get("research_fields"), post.get("tags")) * FIELDS_WEIGHT,
        "methods": keyword_overlap(profile.get("methods"), post.get("methods")) * METHODS_WEIGHT,
        "tools": keyword_overlap(profile.get("tools"), post.get("tools")) * TOOLS_WEIGHT,
    }


def keyword_score(profile: Dict[str, Any], post: Dict[str, Any]) -> int:
    return round(sum(component_scores(profile, post).values()))


def _clamp(value: Any, upper: float) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    return max(0.0, min(float(upper), number))


def _prompts(profile: Dict[str, Any], post: Dict[str, Any], kw_score: int):
    system_prompt = f"""You are an academic research matching assistant. Given a researcher's profile and a lab post, compute a match score and provide a brief explanation.

We have already calculated a Keyword Overlap Score: {kw_score}/{KEYWORD_MAX}.

Evaluate the remaining components to reach a total score (0-100):

1. Skills Match Score (0-{SKILLS_MAX}): the user's bio, degree status and explicit skills against the post's description and requirements. Consider experience depth and relevance.
2. Proximity & Alignment Score (0-{PROXIMITY_MAX}): institutional affiliation, geographic location if relevant, remote work alignment, career stage alignment.
3. LLM Synthesis Score (0-{LLM_MAX}): your overall assessment of fit based on nuanced factors not captured above.

Return the individual scores and the final combined score."""

    user_prompt = f"""Profile: {json.dumps(profile, indent=2, default=str)}
Post: {json.dumps(post, indent=2, default=str)}

The keyword overlap score is already {kw_score}/{KEYWORD_MAX}.
Compute the remaining match components (Skills /{SKILLS_MAX}, Proximity /{PROXIMITY_MAX}, LLM /{LLM_MAX}) and provide the final overall_score and explanation."""
    return system_prompt, user_prompt


def fallback_match_score(kw_score: int) -> MatchScore:
    return MatchScore(
        keyword_score=kw_score,
        skills_score=0.0,
        proximity_score=0.0,
        llm_score=0.0,
        overall_score=float(kw_score),
        reason="AI scoring is currently unavailable; this score reflects keyword overlap only.",
    )


async def score_match(profile: Dict[str, Any], post: Dict[str, Any]) -> MatchScore:
    """
    Combine the deterministic keyword score with model-judged components.
    Falls back to keyword-only scoring when the model call fails.
    """
    profile = profile or {}
    post = post or {}
    kw_score = keyword_score(profile, post)
    logger.info("Computing match score", keyword_score=kw_score)

    system_prompt, user_prompt = _prompts(profile, post, kw_score)
    try:
        arguments = await call_tool(
            [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            MATCH_SCORE_TOOL,
        )
        result = json.loads(arguments)
        if not isinstance(result, dict):
            raise ValueError("Tool arguments are not an object")
    except (GenerationError, ValueError) as e:
        logger.warning("Match scoring model failed; using keyword-only score", error=str(e))
        return fallback_match_score(kw_score)

    skills = _clamp(result.get("skills_score"), SKILLS_MAX)
    proximity = _clamp(result.get("proximity_score"), PROXIMITY_MAX)
    llm = _clamp(result.get("llm_score"), LLM_MAX)
    overall = result.get("overall_score")
    if overall is None:
        overall = kw_score + skills + proximity + llm

    return MatchScore(
        keyword_score=kw_score,
        skills_score=skills,
        proximity_score=proximity,
        llm_score=llm,
        overall_score=_clamp(overall, 100),
        reason=str(result.get("reason") or ""),
    )
