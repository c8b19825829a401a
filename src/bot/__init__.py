"""Telegram bot components for Hanja Step."""

from .agent import HanjaStepAgent
from .telegram import build_application

__all__ = ["HanjaStepAgent", "build_application"]
