"""Tracing helpers for the Concept Crafter runtime."""

from __future__ import annotations

import logging
import os
from importlib import import_module
from typing import Optional

logger = logging.getLogger(__name__)

_initialized = False


def _should_capture_sensitive_data() -> bool:
    raw = os.getenv("CONCEPT_TRACING_CAPTURE_SENSITIVE", "false").strip().lower()
    return raw in {"1", "true", "yes", "on"}


def initialize_tracing(
    *,
    endpoint: Optional[str] = None,
    enable_sensitive_data: Optional[bool] = None,
) -> bool:
    """Configure OpenTelemetry tracing for the agent framework runtime."""

    global _initialized
    if _initialized:
        return False

    otlp_endpoint = (
        endpoint
        or os.getenv("CONCEPT_OTLP_ENDPOINT", "http://localhost:4317")
    ).strip()
    if not otlp_endpoint:
        logger.info("Tracing skipped because no OTLP endpoint is configured.")
        return False

    try:
        module = import_module("agent_framework.observability")
        setup_observability = getattr(module, "setup_observability")
        setup_observability(
            otlp_endpoint=otlp_endpoint,
            enable_sensitive_data=enable_sensitive_data
            if enable_sensitive_data is not None
            else _should_capture_sensitive_data(),
        )
    except Exception as exc:  # noqa: BLE001 # pylint: disable=broad-except
        logger.warning("Tracing initialization failed: %s", exc)
        return False

    _initialized = True
    logger.info("Tracing initialized with OTLP endpoint %s", otlp_endpoint)
    return True
