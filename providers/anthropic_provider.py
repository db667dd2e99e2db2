"""Claude answers through the Anthropic messages API."""

from typing import Optional

from anthropic import AsyncAnthropic, APIConnectionError, APIStatusError, RateLimitError

from providers.base import BaseProvider, NON_RETRYABLE_STATUS, ProviderResponse


class AnthropicProvider(BaseProvider):
    name = "claude"

    def __init__(
        self,
        api_key: str,
        model: str = "claude-haiku-4-5-20251001",
        client: Optional[AsyncAnthropic] = None,
        **kwargs,
    ):
        super().__init__(api_key=api_key, model=model, **kwargs)
        self.client = client or AsyncAnthropic(api_key=api_key, max_retries=0, timeout=self.timeout)

    async def _complete(self, prompt: str) -> ProviderResponse:
        response = await self.client.messages.create(
            model=self.model,
            max_tokens=self.max_tokens,
            messages=[{"role": "user", "content": prompt}],
        )

        # Extract text content
        text = "".join(block.text for block in response.content if block.type == "text")

        return ProviderResponse(
            provider=self.name,
            text=text.strip(),
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
        )

    def _is_retryable(self, error: Exception) -> bool:
        if isinstance(error, (RateLimitError, APIConnectionError)):
            return True
        if isinstance(error, APIStatusError):
            # Don't retry on authentication or malformed requests
            return error.status_code not in NON_RETRYABLE_STATUS
        return super()._is_retryable(error)

    def _retry_after(self, error: Exception, attempt: int) -> float:
        if isinstance(error, RateLimitError):
            header = error.response.headers.get("retry-after") if error.response is not None else None
            if header:
                try:
                    return float(header)
                except ValueError:
                    pass
        return super()._retry_after(error, attempt)
