from typing import Dict, List, Optional

from openai import AsyncOpenAI, OpenAIError

from .config import OPENAI_API_KEY, GENERATION_MODEL, HTTP_TIMEOUT_SECONDS
from .errors import GenerationError
from .logging_config import logger

if not OPENAI_API_KEY:
    raise RuntimeError("OPENAI_API_KEY is not set. Put it in env or .env (server-side only).")

# No automatic retries: a failed call is surfaced to the caller, which decides
client = AsyncOpenAI(api_key=OPENAI_API_KEY, timeout=HTTP_TIMEOUT_SECONDS, max_retries=0)

MODEL = GENERATION_MODEL


async def complete_chat(
    messages: List[Dict],
    model: Optional[str] = None,
    temperature: float = 0.2,
    response_format: Optional[Dict] = None,
) -> str:
    """
    Single non-streaming chat completion. Returns the reply text.

    Raises:
        GenerationError: on any API failure or an empty reply
    """
    kwargs = {}
    if response_format is not None:
        kwargs["response_format"] = response_format
    try:
        resp = await client.chat.completions.create(
            model=model or MODEL,
            messages=messages,
            temperature=temperature,
            **kwargs,
        )
    except OpenAIError as e:
        logger.error("Chat completion failed", model=model or MODEL, error=str(e))
        raise GenerationError(f"Generation model error: {e}") from e

    content = resp.choices[0].message.content if resp.choices else None
    if not content:
        raise GenerationError("Generation model returned an empty reply")
    return content


async def call_tool(
    messages: List[Dict],
    tool: Dict,
    model: Optional[str] = None,
) -> str:
    """
    Force a single function-tool call and return its raw JSON arguments.

    Raises:
        GenerationError: on API failure or when the model did not call the tool
    """
    name = tool["function"]["name"]
    try:
        resp = await client.chat.completions.create(
            model=model or MODEL,
            messages=messages,
            tools=[tool],
            tool_choice={"type": "function", "function": {"name": name}},
        )
    except OpenAIError as e:
        logger.error("Tool call failed", tool=name, error=str(e))
        raise GenerationError(f"Generation model error: {e}") from e

    message = resp.choices[0].message if resp.choices else None
    tool_calls = getattr(message, "tool_calls", None) or []
    if not tool_calls:
        raise GenerationError("No tool call in model response")
    return tool_calls[0].function.arguments


async def stream_chat(messages: List[Dict], model: Optional[str] = None, temperature: float = 0.7):
    """
    Stream chat completion text deltas.
    Yields: str
    """
    try:
        stream = await client.chat.completions.create(
            model=model or MODEL,
            messages=messages,
            temperature=temperature,
            stream=True,
        )
        async for chunk in stream:
            if not chunk.choices:
                continue
            delta = chunk.choices[0].delta.content or ""
            if delta:
                yield delta
    except OpenAIError as e:
        logger.error("Streaming chat failed", error=str(e))
        raise GenerationError(f"Generation model error: {e}") from e
