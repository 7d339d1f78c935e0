"""
AI Chat Orchestrator

One assistant turn for an anonymous table session:

    1. Tenant must exist and be active
    2. Build the system prompt from the visible menu and tenant personality
    3. Append the customer's message to the stored history
    4. Call the completion provider (tenant key, else platform key)
    5. Persist the updated history and record an analytics event

A provider failure or timeout raises ``UpstreamUnavailable`` before anything
is written, so a failed turn leaves the history unchanged.

Author: Khalil Bannouri
Version: 4.0.0
"""

import asyncio
import logging
from typing import Any, Optional

from qrorder.core.config import Settings, get_settings
from qrorder.core.exceptions import NotFound, UpstreamUnavailable
from qrorder.models import (
    AnalyticsEventType,
    MenuCategory,
    MenuItem,
    Organization,
    OrganizationSettings,
    OrganizationStatus,
    utcnow,
)
from qrorder.schemas import AIChatRequest
from qrorder.services.ai.base import BaseCompletionService
from qrorder.services.analytics import AnalyticsRecorder
from qrorder.store.base import BaseStore

logger = logging.getLogger(__name__)

DEFAULT_PERSONALITY = "friendly"

PERSONALITY_STYLES = {
    "friendly": "Be warm and welcoming, and keep answers short.",
    "professional": "Be courteous and precise, in the tone of a fine-dining server.",
    "casual": "Be relaxed and conversational, like a regular chatting with a friend.",
    "enthusiastic": "Be upbeat and excited about the food, without exaggerating.",
}


def resolve_ai_credential(
    tenant_settings: Optional[OrganizationSettings],
    settings: Optional[Settings] = None,
) -> Optional[str]:
    """Tenant-configured key when present, otherwise the platform key."""
    settings = settings or get_settings()
    tenant_key = (tenant_settings.ai_api_key or "").strip() if tenant_settings else ""
    return tenant_key or settings.ai_api_key


def build_system_prompt(
    organization: Organization,
    categories: list[MenuCategory],
    items: list[MenuItem],
    personality: str = DEFAULT_PERSONALITY,
) -> str:
    """Describe the restaurant and its current menu to the assistant."""
    style = PERSONALITY_STYLES.get(personality, PERSONALITY_STYLES[DEFAULT_PERSONALITY])

    lines = [
        f"You are the menu assistant of {organization.name}, answering guests at their table.",
        style,
        "Only recommend dishes listed below. If something is not on the menu, say so.",
        "You cannot place orders; guests order from the menu page.",
    ]
    if organization.description:
        lines.append(f"About the restaurant: {organization.description}")

    category_names = {category.id: category.name for category in categories}
    grouped: dict[str, list[MenuItem]] = {}
    for item in items:
        grouped.setdefault(category_names.get(item.category_id, "Other"), []).append(item)

    lines.append("")
    lines.append("MENU")
    for category_name, category_items in grouped.items():
        lines.append(f"{category_name}:")
        for item in category_items:
            entry = f"- {item.name} ({item.price:.2f})"
            if item.description:
                entry += f": {item.description}"
            if item.allergens:
                entry += f" [allergens: {', '.join(item.allergens)}]"
            lines.append(entry)

    if not items:
        lines.append("(no dishes are available right now)")

    return "\n".join(lines)


class ChatOrchestrator:
    """
    Menu assistant conversation manager.

    Example:
        >>> orchestrator = ChatOrchestrator(store, get_completion_service())
        >>> reply = await orchestrator.respond(validate_chat_message(body))
    """

    def __init__(
        self,
        store: BaseStore,
        completion_service: BaseCompletionService,
        settings: Optional[Settings] = None,
    ):
        self.store = store
        self.completion_service = completion_service
        self.settings = settings or get_settings()
        self.analytics = AnalyticsRecorder(store)

    async def respond(self, request: AIChatRequest) -> str:
        """
        Answer one customer message.

        Raises:
            NotFound: organization missing or not active
            UpstreamUnavailable: provider failed or timed out
        """
        organization = await self.store.get_organization(request.organization_id)
        if organization is None or organization.status != OrganizationStatus.ACTIVE:
            raise NotFound("Organization", request.organization_id)

        tenant_settings = await self.store.get_organization_settings(organization.id)
        personality = (
            tenant_settings.ai_personality if tenant_settings and tenant_settings.ai_personality
            else DEFAULT_PERSONALITY
        )
        categories, items = await self.store.get_menu(organization.id)

        conversation = await self.store.get_conversation(organization.id, request.session_id)
        history: list[dict[str, Any]] = list(conversation.messages) if conversation else []
        history.append({
            "role": "user",
            "content": request.message,
            "timestamp": utcnow().isoformat(),
        })

        prompt = [{"role": "system", "content": build_system_prompt(
            organization, categories, items, personality
        )}]
        prompt.extend(
            {"role": m["role"], "content": m["content"]}
            for m in history[-self.settings.ai_history_limit:]
        )

        reply = await self._complete(
            prompt,
            resolve_ai_credential(tenant_settings, self.settings),
            organization.id,
        )

        history.append({
            "role": "assistant",
            "content": reply,
            "timestamp": utcnow().isoformat(),
        })
        await self.store.upsert_conversation(organization.id, request.session_id, history)

        await self.analytics.record(
            organization.id,
            AnalyticsEventType.AI_CHAT_MESSAGE,
            {"session_id": request.session_id, "message_length": len(request.message)},
            session_id=request.session_id,
        )

        logger.info(
            f"AI chat turn for organization {organization.id} "
            f"(session {request.session_id}, {len(history)} messages)"
        )
        return reply

    async def _complete(
        self,
        prompt: list[dict[str, str]],
        api_key: Optional[str],
        organization_id: str,
    ) -> str:
        provider = self.completion_service.provider_name
        try:
            result = await asyncio.wait_for(
                self.completion_service.complete(prompt, api_key=api_key),
                timeout=self.settings.ai_timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            logger.error(
                f"AI provider {provider} timed out after "
                f"{self.settings.ai_timeout_seconds}s for organization {organization_id}"
            )
            raise UpstreamUnavailable("AI assistant timed out") from e

        if not result.success or not result.content:
            logger.error(
                f"AI provider {provider} failed for organization {organization_id}: "
                f"{result.error_message or 'empty reply'}"
            )
            raise UpstreamUnavailable("AI assistant is unavailable")

        return result.content
