"""Thin wrappers around Microsoft Agent Framework chat completion clients.

This module centralizes the integration with the Microsoft Agent Framework
(MAF) so the rest of the application can stay framework-agnostic. The
provider-specific client is resolved at runtime from the configured
provider, and a single process-wide instance is shared by every gateway.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from importlib import import_module
from typing import Any, Iterable, List, Optional

from .config import AppSettings, ModelSettings

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ChatMessage:
    """Simple representation of a chat message compatible with this app."""

    role: str
    content: str


class MAFIntegrationError(RuntimeError):
    """Raised when the MAF client cannot be initialized."""


class GatewayNotConfiguredError(RuntimeError):
    """Raised when no model credentials are available for a request."""


def _framework() -> Any:
    try:
        return import_module("agent_framework")
    except ModuleNotFoundError as exc:  # pragma: no cover - MAF runtime
        raise MAFIntegrationError(
            "Microsoft Agent Framework is not installed. Reinstall the "
            "project dependencies (e.g. `pip install -e .`)."
        ) from exc


def _coerce_role(role: str) -> Any:
    role_cls = getattr(_framework(), "Role")
    try:
        return role_cls(role)
    except ValueError as exc:
        raise ValueError(
            "Unsupported role for MAF chat message: {role}".format(role=role)
        ) from exc


class MAFChatClient:
    """Wrapper that dispatches chat completion calls through MAF clients."""

    def __init__(self, settings: ModelSettings) -> None:
        self._settings = settings
        self._client = self._create_client(settings)

    @staticmethod
    def _create_client(settings: ModelSettings):
        provider = settings.provider.lower()
        try:
            if provider in {"azure-openai", "azure_openai", "azure"}:
                module = import_module("agent_framework.azure")
                client_cls = getattr(module, "AzureOpenAIChatClient")
                return client_cls(
                    api_key=settings.api_key,
                    deployment_name=settings.model,
                    endpoint=settings.endpoint,
                    api_version=settings.api_version,
                )
            if provider in {"openai", "oai"}:
                module = import_module("agent_framework.openai")
                client_cls = getattr(module, "OpenAIChatClient")
                return client_cls(
                    api_key=settings.api_key,
                    model_id=settings.model,
                    base_url=settings.endpoint,
                )
        except ModuleNotFoundError as exc:  # pragma: no cover - MAF runtime
            missing = exc.name or "a required dependency"
            raise MAFIntegrationError(
                "Microsoft Agent Framework dependency '{missing}' is missing. "
                "Reinstall the project dependencies (e.g. `pip install -e .`)."
                .format(missing=missing)
            ) from exc
        raise MAFIntegrationError(
            f"Unsupported MAF provider '{settings.provider}'."
        )

    @staticmethod
    def _merge_consecutive_roles(
        messages: Iterable[ChatMessage],
    ) -> List[ChatMessage]:
        """Combine adjacent messages that share the same role.

        The Microsoft Agent Framework templates expect user/assistant roles to
        alternate. An apologetic error reply followed by another assistant
        turn, for instance, would otherwise break that alternation.
        """

        merged: List[ChatMessage] = []
        for message in messages:
            if merged and merged[-1].role == message.role:
                previous = merged[-1]
                previous.content = (
                    f"{previous.content}\n\n{message.content}".strip()
                )
                continue
            merged.append(
                ChatMessage(role=message.role, content=message.content)
            )
        return merged

    async def complete(self, messages: Iterable[ChatMessage]) -> ChatMessage:
        """Execute a chat completion call through the underlying MAF client."""

        message_cls = getattr(_framework(), "ChatMessage")
        merged_messages = self._merge_consecutive_roles(messages)
        payload = [
            message_cls(role=_coerce_role(msg.role), text=msg.content)
            for msg in merged_messages
        ]
        response = await self._client.get_response(messages=payload)
        return ChatMessage(role="assistant", content=response.text or "")


_shared_client: Optional[MAFChatClient] = None


def get_shared_client(settings: AppSettings) -> MAFChatClient:
    """Return the process-wide chat client, creating it on first use."""

    global _shared_client
    if _shared_client is not None:
        return _shared_client
    if settings.model is None:
        raise GatewayNotConfiguredError(
            "Server configuration error: API key not available."
        )
    _shared_client = MAFChatClient(settings.model)
    logger.info(
        "Initialized %s chat client for model %s",
        settings.model.provider,
        settings.model.model,
    )
    return _shared_client


def reset_shared_client() -> None:
    """Drop the cached client so the next request re-initializes it."""

    global _shared_client
    _shared_client = None
