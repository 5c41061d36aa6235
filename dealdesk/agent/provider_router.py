from __future__ import annotations

from dealdesk.agent.providers.anthropic_provider import AnthropicProvider
from dealdesk.agent.providers.base import ProviderAdapter
from dealdesk.agent.providers.mock_provider import ScriptedProvider
from dealdesk.agent.providers.openai_provider import OpenAIProvider


def build_provider(
    provider: str,
    *,
    api_key: str = "",
    base_url: str | None = None,
    aws_region: str = "us-west-2",
) -> ProviderAdapter:
    if provider == "bedrock":
        return AnthropicProvider.bedrock(aws_region=aws_region)
    if provider == "anthropic":
        if not api_key:
            raise ValueError("DEALDESK_API_KEY is required for provider anthropic")
        return AnthropicProvider.direct(api_key=api_key, base_url=base_url or None)
    if provider == "openai":
        if not api_key:
            raise ValueError("DEALDESK_API_KEY is required for provider openai")
        return OpenAIProvider(api_key=api_key, base_url=base_url or None)
    if provider == "mock":
        return ScriptedProvider()
    raise ValueError(f"Unsupported provider: {provider}")
