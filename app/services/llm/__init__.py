from app.services.llm.anthropic_provider import AnthropicProvider
from app.services.llm.base import LLMProvider, LLMResponse
from app.services.llm.openai_provider import OpenAIProvider

__all__ = ["LLMProvider", "LLMResponse", "AnthropicProvider", "OpenAIProvider", "build_llm_provider"]


def build_llm_provider(settings) -> LLMProvider:
    if settings.llm_provider == "openai":
        return OpenAIProvider(
            settings.openai_api_key,
            default_model=settings.resolved_ai_model,
            timeout_seconds=settings.ai_timeout_seconds,
        )
    return AnthropicProvider(
        settings.anthropic_api_key,
        default_model=settings.resolved_ai_model,
        timeout_seconds=settings.ai_timeout_seconds,
    )
