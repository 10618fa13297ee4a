from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional


@dataclass
class LLMResponse:
    content: str
    model: str
    usage: Optional[dict] = None


class LLMProvider(ABC):
    """Chat completion backend used for AI replies."""

    @abstractmethod
    async def generate(
        self,
        messages: List[dict],
        system: Optional[str] = None,
        model: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 1024,
    ) -> LLMResponse:
        """Raises UpstreamTimeout on timeout and UpstreamError on provider failure."""

    async def aclose(self) -> None:
        return None
