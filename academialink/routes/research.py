"""
Secondary AI feature routes: research assistant, match scoring, cold email
and the lab-assistant chat stream.
"""
from dataclasses import asdict

from fastapi import APIRouter
from fastapi.responses import StreamingResponse

from ..logging_config import logger
from ..schemas import (
    ColdEmailBody,
    ColdEmailOut,
    LabAssistantBody,
    MatchScoreBody,
    MatchScoreOut,
    ResearchBody,
)
from ..services.assistant_service import draft_cold_email, stream_lab_assistant
from ..services.literature_service import research_result_to_dict, research_topic
from ..services.match_service import score_match

router = APIRouter(prefix="/api", tags=["assistant"])


@router.post("/research-assistant")
async def research_assistant(payload: ResearchBody):
    """
    Literature search across Semantic Scholar, arXiv and Hugging Face,
    plus generated project ideas, outline and library suggestions.
    """
    logger.info("Research assistant invoked", prompt=payload.prompt)
    result = await research_topic(payload.prompt.strip())
    return research_result_to_dict(result)


@router.post("/match-score", response_model=MatchScoreOut)
async def match_score(payload: MatchScoreBody):
    result = await score_match(payload.profileFields, payload.postFields)
    return MatchScoreOut(**asdict(result))


@router.post("/cold-email", response_model=ColdEmailOut)
async def cold_email(payload: ColdEmailBody):
    email = await draft_cold_email(
        recipient_name=payload.recipient_name,
        recipient_type=payload.recipient_type,
        recipient_email=payload.recipient_email,
        opportunity_context=payload.opportunity_context,
        tone=payload.tone,
        user_profile=payload.user_profile,
    )
    return ColdEmailOut(subject=email.subject, body=email.body)


@router.post("/lab-assistant")
async def lab_assistant(payload: LabAssistantBody):
    """Streaming assistant chat using Server-Sent Events (SSE)."""
    history = [turn.model_dump() for turn in payload.messages]
    return StreamingResponse(stream_lab_assistant(history), media_type="text/event-stream")
