"""LLM answer engines queried during tracking runs."""

from providers.base import BaseProvider, ProviderHTTPError, ProviderResponse
from providers.registry import PROVIDER_LABELS, PROVIDERS, build_providers, get_provider

__all__ = [
    "BaseProvider",
    "ProviderHTTPError",
    "ProviderResponse",
    "PROVIDER_LABELS",
    "PROVIDERS",
    "build_providers",
    "get_provider",
]
