"""Lightweight analytics capture routed through the logging system."""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional


LOGGER = logging.getLogger(__name__)


class EventTracker:
    """Logs named product events when enabled; a no-op otherwise."""

    def __init__(self, enabled: bool = False) -> None:
        self.enabled = enabled

    def track(self, event_name: str, payload: Optional[Mapping[str, Any]] = None) -> None:
        if not self.enabled:
            return
        LOGGER.info("[analytics] %s %s", event_name, dict(payload or {}))
