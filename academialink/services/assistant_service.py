"""
General AI lab assistant: cold email drafting and free-form chat streaming.
"""
import json
from dataclasses import dataclass
from typing import Any, AsyncGenerator, Dict, List, Optional

from ..errors import GenerationError
from ..logging_config import logger
from ..openai_client import complete_chat, stream_chat
from .literature_service import strip_code_fences

LAB_ASSISTANT_PROMPT = (
    "You are an AI Lab Assistant for AcademiaLink, a professional network for academic research "
    "collaboration. Your role is to help researchers with:\n"
    "- Finding and matching with relevant labs, RAships, and collaborations\n"
    "- Crafting professional cold emails and outreach messages\n"
    "- Discovering grant opportunities and funding sources\n"
    "- Providing advice on academic career development\n"
    "- Answering questions about research best practices\n\n"
    "Be concise, professional, and actionable. Focus on concrete next steps the researcher can take."
)

PROFILE_FIELDS = (
    "full_name", "role", "institution", "department", "degree_status", "bio",
    "research_fields", "methods", "tools", "skills",
)


@dataclass
class ColdEmail:
    subject: str
    body: str


def fallback_cold_email(recipient_name: str) -> ColdEmail:
    return ColdEmail(
        subject=f"Research Opportunity Inquiry - {recipient_name}",
        body=(
            f"Dear {recipient_name},\n\n"
            "I hope this message finds you well. I am writing to express my interest in "
            "research opportunities in your group. I would welcome the chance to discuss how "
            "my background could contribute to your work.\n\n"
            "Thank you for your time and consideration.\n\nBest regards"
        ),
    )


def _profile_summary(profile: Optional[Dict[str, Any]]) -> str:
    if not profile:
        return "No profile provided."
    lines = []
    for key in PROFILE_FIELDS:
        value = profile.get(key)
        if not value:
            continue
        if isinstance(value, (list, tuple)):
            value = ", ".join(str(v) for v in value)
        lines.append(f"- {key}: {value}")
    return "\n".join(lines) or "No profile provided."


async def draft_cold_email(
    recipient_name: str,
    recipient_type: str = "professor",
    recipient_email: Optional[str] = None,
    opportunity_context: str = "",
    tone: str = "professional",
    user_profile: Optional[Dict[str, Any]] = None,
) -> ColdEmail:
    """
    Draft a personalized outreach email. Falls back to a template on failure.
    """
    user_prompt = f"""Write a cold email from the researcher described below.

Recipient: {recipient_name} ({recipient_type}){f" <{recipient_email}>" if recipient_email else ""}
Tone: {tone}
Opportunity context: {opportunity_context or "General research inquiry"}

Sender profile:
{_profile_summary(user_profile)}

Keep it under 250 words, specific to the recipient and the sender's background.
Respond ONLY with a JSON object: {{"subject": "...", "body": "..."}}"""

    messages = [
        {"role": "system", "content": LAB_ASSISTANT_PROMPT},
        {"role": "user", "content": user_prompt},
    ]
    try:
        content = await complete_chat(messages, temperature=0.7)
        parsed = json.loads(strip_code_fences(content))
        subject = (parsed.get("subject") or "").strip()
        body = (parsed.get("body") or "").strip()
        if not subject or not body:
            raise ValueError("Missing subject or body")
    except (GenerationError, ValueError, AttributeError) as e:
        logger.warning("Cold email generation failed; using template", error=str(e))
        return fallback_cold_email(recipient_name)

    logger.info("Cold email drafted", recipient_type=recipient_type)
    return ColdEmail(subject=subject, body=body)


async def stream_lab_assistant(history: List[Dict[str, str]]) -> AsyncGenerator[str, None]:
    """
    Stream the assistant's reply to a chat history as SSE events.

    Yields:
        SSE-formatted strings: delta events, then final, then done.
        A generation failure yields an error event instead of final.
    """
    messages = [{"role": "system", "content": LAB_ASSISTANT_PROMPT}]
    messages.extend({"role": m["role"], "content": m["content"]} for m in history)

    full_response = ""
    try:
        async for delta in stream_chat(messages):
            full_response += delta
            yield f'data: {json.dumps({"type": "delta", "text": delta})}\n\n'
    except GenerationError as e:
        logger.error("Lab assistant stream failed", error=str(e))
        yield f'data: {json.dumps({"type": "error", "message": "The assistant is unavailable. Please try again."})}\n\n'
        yield 'data: {"type":"done"}\n\n'
        return

    yield f'data: {json.dumps({"type": "final", "text": full_response.strip()})}\n\n'
    yield 'data: {"type":"done"}\n\n'
