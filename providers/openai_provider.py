"""ChatGPT answers through the OpenAI chat completions API."""

from typing import Optional

from openai import AsyncOpenAI, APIConnectionError, APIStatusError, APITimeoutError, RateLimitError

from providers.base import BaseProvider, NON_RETRYABLE_STATUS, ProviderResponse


class OpenAIProvider(BaseProvider):
    name = "chatgpt"

    def __init__(self, api_key: str, model: str = "gpt-4o-mini", client: Optional[AsyncOpenAI] = None, **kwargs):
        super().__init__(api_key=api_key, model=model, **kwargs)
        # SDK retries are disabled; backoff is handled by BaseProvider
        self.client = client or AsyncOpenAI(api_key=api_key, max_retries=0, timeout=self.timeout)

    async def _complete(self, prompt: str) -> ProviderResponse:
        response = await self.client.chat.completions.create(
            model=self.model,
            messages=[{"role": "user", "content": prompt}],
            max_tokens=self.max_tokens,
        )

        text = ""
        if response.choices:
            text = (response.choices[0].message.content or "").strip()

        usage = getattr(response, "usage", None)
        return ProviderResponse(
            provider=self.name,
            text=text,
            input_tokens=getattr(usage, "prompt_tokens", None),
            output_tokens=getattr(usage, "completion_tokens", None),
        )

    def _is_retryable(self, error: Exception) -> bool:
        if isinstance(error, (RateLimitError, APIConnectionError, APITimeoutError)):
            return True
        if isinstance(error, APIStatusError):
            return error.status_code not in NON_RETRYABLE_STATUS
        return super()._is_retryable(error)
