"""Perplexity answers with web citations."""

import aiohttp

from providers.base import BaseProvider, ProviderHTTPError, ProviderResponse

PERPLEXITY_API_URL = "https://api.perplexity.ai/chat/completions"


class PerplexityProvider(BaseProvider):
    name = "perplexity"

    def __init__(self, api_key: str, model: str = "sonar", **kwargs):
        super().__init__(api_key=api_key, model=model, **kwargs)

    async def _complete(self, prompt: str) -> ProviderResponse:
        async with aiohttp.ClientSession(timeout=self._client_timeout()) as session:
            async with session.post(
                PERPLEXITY_API_URL,
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                },
                json={
                    "model": self.model,
                    "messages": [{"role": "user", "content": prompt}],
                    "max_tokens": self.max_tokens,
                },
            ) as response:
                if response.status != 200:
                    raise ProviderHTTPError(self.name, response.status, await response.text())

                data = await response.json()

        text = data.get("choices", [{}])[0].get("message", {}).get("content") or ""

        citations = data.get("citations") or [
            result["url"] for result in data.get("search_results") or [] if result.get("url")
        ]

        usage = data.get("usage") or {}
        return ProviderResponse(
            provider=self.name,
            text=text.strip(),
            citations=list(citations),
            input_tokens=usage.get("prompt_tokens"),
            output_tokens=usage.get("completion_tokens"),
        )
