"""Common interface for LLM answer engines with retry logic."""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, List, Optional

import aiohttp
import structlog

logger = structlog.get_logger(__name__)

# HTTP status codes that will not succeed on retry
NON_RETRYABLE_STATUS = {400, 401, 403, 404, 422}


@dataclass
class ProviderResponse:
    """Answer returned by a provider for a single prompt."""

    provider: str
    text: str
    citations: List[str] = field(default_factory=list)
    input_tokens: Optional[int] = None
    output_tokens: Optional[int] = None


class ProviderHTTPError(Exception):
    """Non-2xx response from a provider REST endpoint."""

    def __init__(self, provider: str, status: int, body: str):
        super().__init__(f"{provider} API: {status} {body[:500]}")
        self.provider = provider
        self.status = status
        self.body = body


class BaseProvider(ABC):
    """Base class for providers.

    Subclasses implement ``_complete``; ``chat`` wraps it with exponential
    backoff. Authentication and other client errors are raised immediately.
    """

    name: str = ""

    def __init__(
        self,
        api_key: str,
        model: str,
        max_tokens: int = 1024,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        timeout: float = 60.0,
    ):
        """Initialize provider.

        Args:
            api_key: Provider API key
            model: Model identifier
            max_tokens: Maximum tokens to generate per answer
            max_retries: Maximum number of attempts
            retry_delay: Initial delay between retries (exponential backoff)
            timeout: Per-request timeout in seconds
        """
        self.api_key = api_key
        self.model = model
        self.max_tokens = max_tokens
        self.max_retries = max(1, max_retries)
        self.retry_delay = retry_delay
        self.timeout = timeout
        self.logger = logger.bind(provider=self.name, model=model)

    async def chat(self, prompt: str) -> ProviderResponse:
        """Send a prompt and return the provider's answer.

        Args:
            prompt: User prompt

        Returns:
            ProviderResponse with answer text, citations and token usage
        """
        return await self._retry_with_backoff(self._complete, prompt)

    @abstractmethod
    async def _complete(self, prompt: str) -> ProviderResponse:
        """Perform a single request without retries."""
        pass

    def _is_retryable(self, error: Exception) -> bool:
        """Decide whether an error is transient.

        The default handles REST providers; SDK-based providers extend it.
        """
        if isinstance(error, ProviderHTTPError):
            return error.status not in NON_RETRYABLE_STATUS
        return isinstance(error, (aiohttp.ClientError, asyncio.TimeoutError))

    def _retry_after(self, error: Exception, attempt: int) -> float:
        return self.retry_delay * (2**attempt)

    async def _retry_with_backoff(self, func, *args, **kwargs) -> Any:
        """Execute coroutine function with exponential backoff retry logic.

        Args:
            func: Coroutine function to execute
            *args: Positional arguments for function
            **kwargs: Keyword arguments for function

        Returns:
            Function result

        Raises:
            Exception: The last error once retries are exhausted, or any
                non-retryable error immediately
        """
        last_exception: Optional[Exception] = None

        for attempt in range(self.max_retries):
            try:
                return await func(*args, **kwargs)

            except Exception as e:
                if not self._is_retryable(e):
                    self.logger.error("provider_request_failed", error=str(e), retryable=False)
                    raise

                last_exception = e
                delay = self._retry_after(e, attempt)
                self.logger.warning(
                    "provider_request_retry",
                    error=str(e),
                    error_type=type(e).__name__,
                    attempt=attempt + 1,
                    max_retries=self.max_retries,
                    delay=delay,
                )
                if attempt < self.max_retries - 1:
                    await asyncio.sleep(delay)

        self.logger.error(
            "provider_max_retries_exceeded",
            error=str(last_exception) if last_exception else "unknown",
        )
        raise last_exception

    def _client_timeout(self) -> aiohttp.ClientTimeout:
        return aiohttp.ClientTimeout(total=self.timeout)
