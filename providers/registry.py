"""Provider names, labels and construction from configuration."""

from typing import Dict, Optional

import structlog

from core.config import Config, get_config
from providers.anthropic_provider import AnthropicProvider
from providers.base import BaseProvider
from providers.gemini import GeminiProvider
from providers.openai_provider import OpenAIProvider
from providers.perplexity import PerplexityProvider

logger = structlog.get_logger(__name__)

PROVIDERS = ["chatgpt", "claude", "gemini", "perplexity"]

PROVIDER_LABELS = {
    "chatgpt": "ChatGPT",
    "claude": "Claude",
    "gemini": "Gemini",
    "perplexity": "Perplexity",
}

PROVIDER_COLORS = {
    "chatgpt": "#10a37f",
    "claude": "#d97706",
    "gemini": "#4285f4",
    "perplexity": "#6366f1",
}


def get_provider(name: str, config: Optional[Config] = None) -> BaseProvider:
    """Build a single provider from configuration.

    Args:
        name: Provider name (chatgpt, claude, gemini, perplexity)
        config: Configuration (defaults to the global one)

    Returns:
        Provider instance

    Raises:
        ValueError: If the provider name is unknown
    """
    config = config or get_config()
    common = {
        "max_tokens": config.provider_max_tokens,
        "max_retries": config.provider_max_retries,
        "timeout": config.provider_timeout,
    }

    if name == "chatgpt":
        return OpenAIProvider(api_key=config.openai_api_key, model=config.openai_model, **common)
    if name == "claude":
        return AnthropicProvider(api_key=config.anthropic_api_key, model=config.claude_model, **common)
    if name == "gemini":
        return GeminiProvider(api_key=config.gemini_api_key, model=config.gemini_model, **common)
    if name == "perplexity":
        return PerplexityProvider(
            api_key=config.perplexity_api_key, model=config.perplexity_model, **common
        )
    raise ValueError(f"Unknown provider: {name}")


def _api_key_for(name: str, config: Config) -> str:
    return {
        "chatgpt": config.openai_api_key,
        "claude": config.anthropic_api_key,
        "gemini": config.gemini_api_key,
        "perplexity": config.perplexity_api_key,
    }.get(name, "")


def build_providers(config: Optional[Config] = None) -> Dict[str, BaseProvider]:
    """Build every enabled provider that has an API key configured."""
    config = config or get_config()
    providers: Dict[str, BaseProvider] = {}

    for name in PROVIDERS:
        if name not in config.enabled_providers:
            continue
        if not _api_key_for(name, config):
            logger.warning("provider_skipped_missing_api_key", provider=name)
            continue
        providers[name] = get_provider(name, config)

    logger.info("providers_initialized", providers=list(providers))
    return providers
