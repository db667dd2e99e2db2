"""Shared OpenAI client for classification, generation and translation calls."""

import asyncio
import json
import re
from typing import Any, Dict, List, Optional, Tuple

from openai import AsyncOpenAI
import structlog

from core.config import get_config

logger = structlog.get_logger(__name__)

_CODE_FENCE = re.compile(r"```(?:json)?\s*", re.IGNORECASE)

_override: Optional[AsyncOpenAI] = None

# The client's connection pool belongs to the loop it was first used on, so
# each event loop (one per worker job under asyncio.run) gets its own client.
_loop_clients: Dict[int, Tuple[asyncio.AbstractEventLoop, AsyncOpenAI]] = {}


def _new_client() -> AsyncOpenAI:
    config = get_config()
    client = AsyncOpenAI(api_key=config.openai_api_key, timeout=config.provider_timeout)
    logger.info("openai_client_initialized", model=config.openai_model)
    return client


def get_openai_client() -> AsyncOpenAI:
    """Get the OpenAI client for the running event loop.

    Clients of loops that have since closed are dropped. Outside a running
    loop a fresh, uncached client is returned.
    """
    if _override is not None:
        return _override

    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        return _new_client()

    for key, (cached_loop, _) in list(_loop_clients.items()):
        if cached_loop.is_closed():
            del _loop_clients[key]

    entry = _loop_clients.get(id(loop))
    if entry is None or entry[0] is not loop:
        entry = (loop, _new_client())
        _loop_clients[id(loop)] = entry
    return entry[1]


def set_openai_client(client: Optional[AsyncOpenAI]):
    """Install a client used on every loop (tests install fakes here)."""
    global _override
    _override = client
    _loop_clients.clear()


def strip_code_fences(text: str) -> str:
    """Remove markdown code fences a model may wrap around JSON."""
    return _CODE_FENCE.sub("", text or "").replace("```", "").strip()


async def complete_text(
    messages: List[Dict[str, str]],
    model: Optional[str] = None,
    max_tokens: int = 1024,
    temperature: float = 0.7,
    json_mode: bool = False,
    client: Optional[AsyncOpenAI] = None,
) -> str:
    """Run a chat completion and return the stripped message content.

    Args:
        messages: Chat messages with 'role' and 'content'
        model: Model name (defaults to the configured OpenAI model)
        max_tokens: Maximum tokens to generate
        temperature: Sampling temperature
        json_mode: Request a JSON object response
        client: Client override

    Returns:
        Message content, empty string when the model returned nothing
    """
    client = client or get_openai_client()
    kwargs: Dict[str, Any] = {
        "model": model or get_config().openai_model,
        "messages": messages,
        "max_tokens": max_tokens,
        "temperature": temperature,
    }
    if json_mode:
        kwargs["response_format"] = {"type": "json_object"}

    response = await client.chat.completions.create(**kwargs)
    if not response.choices:
        return ""
    return (response.choices[0].message.content or "").strip()


async def complete_json(messages: List[Dict[str, str]], **kwargs) -> Any:
    """Run a chat completion and parse the answer as JSON.

    Raises:
        json.JSONDecodeError: If the answer is not valid JSON
    """
    content = await complete_text(messages, **kwargs)
    return json.loads(strip_code_fences(content) or "{}")
