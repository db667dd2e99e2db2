"""Gemini answers grounded with Google Search through the REST API."""

from typing import Any, Dict, List
from urllib.parse import urlparse

import aiohttp

from providers.base import BaseProvider, ProviderHTTPError, ProviderResponse

GEMINI_API_URL = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"

# Grounding redirect hosts that never point at the cited page itself
IGNORED_CITATION_HOSTS = (
    "vertexaisearch.cloud.google.com",
    "vertexaisearch.googleapis.com",
)


def _is_ignored_host(uri: str) -> bool:
    try:
        host = urlparse(uri).hostname or ""
    except ValueError:
        return False
    return any(host == h or host.endswith(f".{h}") for h in IGNORED_CITATION_HOSTS)


def extract_grounding_citations(data: Dict[str, Any]) -> List[str]:
    """Collect web citations from the first candidate's grounding metadata."""
    candidates = data.get("candidates") or []
    if not candidates:
        return []

    chunks = (candidates[0].get("groundingMetadata") or {}).get("groundingChunks") or []
    citations = []
    for chunk in chunks:
        uri = (chunk.get("web") or {}).get("uri")
        if uri and not _is_ignored_host(uri):
            citations.append(uri)
    return citations


class GeminiProvider(BaseProvider):
    name = "gemini"

    def __init__(self, api_key: str, model: str = "gemini-2.0-flash", **kwargs):
        super().__init__(api_key=api_key, model=model, **kwargs)

    async def _complete(self, prompt: str) -> ProviderResponse:
        async with aiohttp.ClientSession(timeout=self._client_timeout()) as session:
            async with session.post(
                GEMINI_API_URL.format(model=self.model),
                headers={
                    "x-goog-api-key": self.api_key,
                    "Content-Type": "application/json",
                },
                json={
                    "contents": [{"parts": [{"text": prompt}]}],
                    "tools": [{"google_search": {}}],
                    "generationConfig": {"maxOutputTokens": self.max_tokens},
                },
            ) as response:
                if response.status != 200:
                    raise ProviderHTTPError(self.name, response.status, await response.text())

                data = await response.json()

        candidates = data.get("candidates") or []
        parts = ((candidates[0].get("content") or {}).get("parts") or []) if candidates else []
        text = "".join(part.get("text", "") for part in parts).strip()

        usage = data.get("usageMetadata") or {}
        return ProviderResponse(
            provider=self.name,
            text=text,
            citations=extract_grounding_citations(data),
            input_tokens=usage.get("promptTokenCount"),
            output_tokens=usage.get("candidatesTokenCount"),
        )
