from typing import List, Optional

import httpx

from app.errors import UpstreamError, UpstreamTimeout
from app.logging_config import get_logger
from app.services.llm.base import LLMProvider, LLMResponse

logger = get_logger("llm.anthropic")

ANTHROPIC_VERSION = "2023-06-01"


class AnthropicProvider(LLMProvider):
    """Anthropic Messages API over httpx."""

    def __init__(
        self,
        api_key: str,
        default_model: str = "claude-3-5-sonnet-20241022",
        timeout_seconds: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key
        self.default_model = default_model
        self.base_url = "https://api.anthropic.com/v1/messages"
        self.client = client or httpx.AsyncClient(timeout=timeout_seconds)

    async def generate(
        self,
        messages: List[dict],
        system: Optional[str] = None,
        model: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 1024,
    ) -> LLMResponse:
        model = model or self.default_model
        payload = {
            "model": model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": messages,
        }
        if system:
            payload["system"] = system

        logger.debug(f"Anthropic request: model={model}, messages_count={len(messages)}")
        try:
            response = await self.client.post(
                self.base_url,
                headers={
                    "x-api-key": self.api_key,
                    "anthropic-version": ANTHROPIC_VERSION,
                    "content-type": "application/json",
                },
                json=payload,
            )
        except httpx.TimeoutException as exc:
            raise UpstreamTimeout(f"Anthropic timeout: {exc}") from exc
        except httpx.HTTPError as exc:
            raise UpstreamError(f"Anthropic transport error: {exc}") from exc

        if response.status_code != 200:
            logger.error(f"Anthropic error: {response.status_code} {response.text[:500]}")
            raise UpstreamError(
                f"Anthropic API error: {response.status_code}",
                transient=response.status_code >= 500 or response.status_code == 429,
                status_code=response.status_code,
            )

        data = response.json()
        content = "".join(
            block.get("text", "") for block in data.get("content", []) if block.get("type") == "text"
        )
        return LLMResponse(content=content, model=data.get("model", model), usage=data.get("usage"))

    async def aclose(self) -> None:
        await self.client.aclose()
