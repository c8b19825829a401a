"""Bootstrap logic for running the Telegram bot."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from src.app.settings import AppSettings
from src.bot import HanjaStepAgent, build_application
from src.db import get_session_factory, run_migrations_if_needed
from src.services import EventTracker, Narrator, build_openai_client


LOGGER = logging.getLogger(__name__)


def _configure_logging(log_level: str) -> None:
    """Set up project-wide logging configuration."""
    logging.basicConfig(
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
        level=log_level,
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)


def _ensure_event_loop() -> None:
    """Guarantee that an asyncio event loop exists for the current thread."""
    try:
        asyncio.get_event_loop()
    except RuntimeError:
        asyncio.set_event_loop(asyncio.new_event_loop())


def build_narrator(settings: AppSettings) -> Optional[Narrator]:
    if not settings.openai_api_key:
        LOGGER.info("OPENAI_API_KEY is not set; narration is disabled.")
        return None
    client = build_openai_client(settings.openai_api_key)
    return Narrator(client, model=settings.tts_model, voice=settings.tts_voice)


def build_agent(settings: AppSettings) -> HanjaStepAgent:
    return HanjaStepAgent(
        get_session_factory(),
        narrator=build_narrator(settings),
        tracker=EventTracker(enabled=settings.analytics_enabled),
        new_item_limit=settings.study_new_limit,
        max_queue_items=settings.study_max_items,
        quiz_question_count=settings.quiz_question_count,
        learner_tz=settings.learner_timezone,
    )


def run_bot(settings: AppSettings) -> None:
    """Start the Telegram bot using the provided settings."""
    _configure_logging(settings.log_level)

    try:
        run_migrations_if_needed()
    except Exception:
        LOGGER.exception("Database migrations failed. Aborting startup.")
        raise

    application = build_application(settings.telegram_bot_token, build_agent(settings))

    _ensure_event_loop()

    LOGGER.info("Starting Telegram bot for %s in %s mode.", settings.app_name, settings.app_env)
    application.run_polling()
