"""
AI Completion Service Factory

Usage:
    from qrorder.services.ai import get_completion_service, ChatOrchestrator

    # Returns MockCompletionService or OpenAICompletionService based on ENV_MODE
    orchestrator = ChatOrchestrator(store, get_completion_service())
    reply = await orchestrator.respond(request)

Environment Switching:
    - ENV_MODE=development -> MockCompletionService (no API calls)
    - ENV_MODE=staging     -> OpenAICompletionService
    - ENV_MODE=production  -> OpenAICompletionService

Author: Khalil Bannouri
Version: 4.0.0
"""

import logging
from functools import lru_cache

from qrorder.core.config import get_settings
from qrorder.services.ai.base import BaseCompletionService, CompletionResult
from qrorder.services.ai.chat import (
    ChatOrchestrator,
    build_system_prompt,
    resolve_ai_credential,
)
from qrorder.services.ai.mock import MockCompletionService
from qrorder.services.ai.openai import OpenAICompletionService

logger = logging.getLogger(__name__)


@lru_cache()
def get_completion_service() -> BaseCompletionService:
    """
    Get the configured completion service instance.

    The instance is cached so the HTTP connection pool is shared across
    requests.
    """
    settings = get_settings()

    if settings.is_development:
        logger.info("AI Service: Using MockCompletionService (development mode)")
        return MockCompletionService()

    logger.info(
        f"AI Service: Using OpenAICompletionService ({settings.env_mode.value} mode)"
    )
    return OpenAICompletionService()


def reset_completion_service() -> None:
    """Clear the cached completion service instance."""
    get_completion_service.cache_clear()
    logger.debug("Completion service cache cleared")


__all__ = [
    "get_completion_service",
    "reset_completion_service",
    "resolve_ai_credential",
    "build_system_prompt",
    "BaseCompletionService",
    "CompletionResult",
    "ChatOrchestrator",
    "MockCompletionService",
    "OpenAICompletionService",
]
