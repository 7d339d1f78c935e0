"""
Completion Service Abstract Base Class

Interface for the chat completion providers behind the menu assistant.
``MockCompletionService`` and ``OpenAICompletionService`` implement it, so
the chat orchestrator does not care which one the factory returned.

Author: Khalil Bannouri
Version: 4.0.0
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional


@dataclass
class CompletionResult:
    """
    Standardized result of one completion call.

    Attributes:
        success: Whether the provider produced a reply
        content: Assistant reply text
        model: Model that answered
        error_message: Provider or transport error when unsuccessful
        response_time_ms: Wall time of the call
    """
    success: bool
    content: Optional[str] = None
    model: Optional[str] = None
    error_message: Optional[str] = None
    response_time_ms: float = 0.0


class BaseCompletionService(ABC):
    """
    Abstract base class for completion providers.

    Implementations never raise for provider-side failures; they return a
    ``CompletionResult`` with ``success=False`` and an error message.
    """

    @property
    @abstractmethod
    def provider_name(self) -> str:
        pass

    @abstractmethod
    async def complete(
        self,
        messages: list[dict[str, str]],
        api_key: Optional[str] = None,
    ) -> CompletionResult:
        """
        Generate the next assistant turn.

        Args:
            messages: Role/content pairs, system prompt first
            api_key: Credential to call the provider with

        Returns:
            CompletionResult: Standardized result object
        """
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        pass

    async def close(self) -> None:
        """Release network resources. No-op by default."""
        return None
