"""Integrations used by the bot: OpenAI client, narration and analytics."""

from .analytics import EventTracker
from .narration import Narrator
from .openai_client import build_openai_client

__all__ = ["EventTracker", "Narrator", "build_openai_client"]
