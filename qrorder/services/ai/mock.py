"""
Mock Completion Service Implementation

Answers menu questions without calling a provider. Used in development mode
(ENV_MODE=development) to:
    - Exercise the chat flow and conversation history locally
    - Demo the assistant without an API key
    - Simulate provider outages via ``failure_rate``

Behavior:
    - Simulates response times (configurable, 100-400ms by default)
    - Names up to three dishes found in the system prompt
    - Fails ``failure_rate`` of calls with a provider-style error

Author: Khalil Bannouri
Version: 4.0.0
"""

import asyncio
import logging
import random
import re
from datetime import datetime
from typing import Optional

from qrorder.services.ai.base import BaseCompletionService, CompletionResult

logger = logging.getLogger(__name__)

# Menu lines in the system prompt look like "- Margherita (12.50): ..."
MENU_LINE = re.compile(r"^- (?P<name>[^(\n]+?) \(", re.MULTILINE)


class MockCompletionService(BaseCompletionService):
    """
    Mock implementation of the completion service.

    Example:
        >>> service = MockCompletionService(min_latency=0, max_latency=0)
        >>> result = await service.complete([{"role": "user", "content": "Hi"}])
        >>> result.success
        True
    """

    ERRORS = [
        "rate_limit_exceeded: Too many requests",
        "server_error: The model is overloaded",
        "timeout: Upstream request timed out",
    ]

    def __init__(
        self,
        failure_rate: float = 0.0,
        min_latency: float = 0.1,
        max_latency: float = 0.4,
    ):
        self.failure_rate = failure_rate
        self.min_latency = min_latency
        self.max_latency = max_latency

        logger.info(
            f"MockCompletionService initialized "
            f"(failure_rate={failure_rate:.0%}, "
            f"latency={min_latency}-{max_latency}s)"
        )

    @property
    def provider_name(self) -> str:
        return "mock"

    async def _simulate_latency(self) -> float:
        latency = random.uniform(self.min_latency, self.max_latency)
        if latency > 0:
            await asyncio.sleep(latency)
        return latency * 1000

    def _compose_reply(self, messages: list[dict[str, str]]) -> str:
        system = next((m["content"] for m in messages if m.get("role") == "system"), "")
        question = next(
            (m["content"] for m in reversed(messages) if m.get("role") == "user"),
            "",
        )
        dishes = [match.group("name").strip() for match in MENU_LINE.finditer(system)]

        if not dishes:
            return (
                "The menu is being updated right now. "
                "Please ask a member of staff for today's dishes."
            )

        suggestions = ", ".join(dishes[:3])
        return (
            f"Thanks for asking about \"{question[:80]}\". "
            f"Popular choices today are {suggestions}."
        )

    async def complete(
        self,
        messages: list[dict[str, str]],
        api_key: Optional[str] = None,
    ) -> CompletionResult:
        latency_ms = await self._simulate_latency()

        if random.random() < self.failure_rate:
            error = random.choice(self.ERRORS)
            logger.debug(f"Mock: completion failed - {error}")
            return CompletionResult(
                success=False,
                error_message=error,
                response_time_ms=latency_ms,
            )

        reply = self._compose_reply(messages)
        logger.debug(f"Mock: completion at {datetime.now().isoformat()} ({len(reply)} chars)")

        return CompletionResult(
            success=True,
            content=reply,
            model="mock",
            response_time_ms=latency_ms,
        )

    async def health_check(self) -> bool:
        return True
