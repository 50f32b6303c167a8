import json

from academialink.errors import GenerationError
from academialink.services import assistant_service


def _events(chunks):
    return [json.loads(c[len("data: "):].strip()) for c in chunks]


async def test_cold_email_uses_model_output(monkeypatch):
    seen = {}

    async def fake_chat(messages, **kwargs):
        seen["prompt"] = messages[1]["content"]
        return '```json\n{"subject": "Joining your NLP lab", "body": "Dear Dr. Lee, ..."}\n```'

    monkeypatch.setattr(assistant_service, "complete_chat", fake_chat)
    email = await assistant_service.draft_cold_email(
        "Dr. Lee",
        recipient_email="lee@uni.edu",
        opportunity_context="Summer RA position",
        user_profile={"full_name": "Sam Doe", "research_fields": ["nlp", "ir"]},
    )

    assert email.subject == "Joining your NLP lab"
    assert email.body == "Dear Dr. Lee, ..."
    assert "Dr. Lee (professor) <lee@uni.edu>" in seen["prompt"]
    assert "- research_fields: nlp, ir" in seen["prompt"]
    assert "Summer RA position" in seen["prompt"]


async def test_cold_email_falls_back_on_failure(monkeypatch):
    async def failing_chat(messages, **kwargs):
        raise GenerationError("down")

    monkeypatch.setattr(assistant_service, "complete_chat", failing_chat)
    email = await assistant_service.draft_cold_email("Dr. Lee")

    assert email.subject == "Research Opportunity Inquiry - Dr. Lee"
    assert email.body.startswith("Dear Dr. Lee,")


async def test_cold_email_falls_back_on_incomplete_json(monkeypatch):
    async def partial_chat(messages, **kwargs):
        return '{"subject": "Hi"}'

    monkeypatch.setattr(assistant_service, "complete_chat", partial_chat)
    email = await assistant_service.draft_cold_email("Dr. Lee")
    assert email.subject == "Research Opportunity Inquiry - Dr. Lee"


async def test_lab_assistant_streams_deltas_then_final(monkeypatch):
    captured = {}

    async def fake_stream(messages, **kwargs):
        captured["messages"] = messages
        for piece in ["Try ", "emailing ", "the PI."]:
            yield piece

    monkeypatch.setattr(assistant_service, "stream_chat", fake_stream)
    history = [{"role": "user", "content": "How do I find an RA position?"}]
    chunks = [c async for c in assistant_service.stream_lab_assistant(history)]
    events = _events(chunks)

    assert [e["type"] for e in events] == ["delta", "delta", "delta", "final", "done"]
    assert events[3]["text"] == "Try emailing the PI."
    assert captured["messages"][0]["role"] == "system"
    assert captured["messages"][1:] == history


async def test_lab_assistant_reports_errors(monkeypatch):
    async def broken_stream(messages, **kwargs):
        yield "partial"
        raise GenerationError("connection reset")

    monkeypatch.setattr(assistant_service, "stream_chat", broken_stream)
    chunks = [c async for c in assistant_service.stream_lab_assistant([])]
    events = _events(chunks)

    assert [e["type"] for e in events] == ["delta", "error", "done"]
