"""Configuration helpers for the Hanja Step runtime."""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import tzinfo
from typing import Optional

import pytz

from src.bot.quiz import DEFAULT_QUESTION_COUNT
from src.db.progress import DEFAULT_MAX_ITEMS, DEFAULT_NEW_LIMIT
from src.services.narration import DEFAULT_TTS_MODEL, DEFAULT_TTS_VOICE
from src.srs.dates import DEFAULT_TIMEZONE_NAME, learner_timezone


MAX_QUIZ_QUESTION_COUNT = 50


def _read_int(name: str, default: int) -> int:
    raw = os.getenv(name, str(default))
    try:
        return int(raw)
    except ValueError as exc:
        raise RuntimeError(f"{name} must be an integer.") from exc


def _read_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class AppSettings:
    """Strongly typed application settings loaded from environment variables."""

    app_name: str
    app_env: str
    log_level: str
    app_timezone: str
    telegram_bot_token: str
    openai_api_key: Optional[str]
    tts_model: str
    tts_voice: str
    study_new_limit: int
    study_max_items: int
    quiz_question_count: int
    analytics_enabled: bool

    @property
    def narration_enabled(self) -> bool:
        return bool(self.openai_api_key)

    @property
    def learner_timezone(self) -> tzinfo:
        return learner_timezone(self.app_timezone)

    @classmethod
    def from_env(cls) -> AppSettings:
        """Construct settings directly from environment variables."""
        app_name = os.getenv("APP_NAME", "Hanja Step")
        app_env = os.getenv("APP_ENV", "development")
        log_level = os.getenv("LOG_LEVEL", "INFO")
        app_timezone = os.getenv("APP_TIMEZONE") or DEFAULT_TIMEZONE_NAME
        try:
            learner_timezone(app_timezone)
        except pytz.UnknownTimeZoneError as exc:
            raise RuntimeError(f"APP_TIMEZONE {app_timezone!r} is not a known timezone.") from exc
        telegram_bot_token = os.getenv("TELEGRAM_BOT_TOKEN")

        if not telegram_bot_token:
            raise RuntimeError(
                "TELEGRAM_BOT_TOKEN environment variable is required to start the Telegram bot."
            )

        study_new_limit = _read_int("STUDY_NEW_LIMIT", DEFAULT_NEW_LIMIT)
        if study_new_limit < 0:
            raise RuntimeError("STUDY_NEW_LIMIT must not be negative.")

        study_max_items = _read_int("STUDY_MAX_ITEMS", DEFAULT_MAX_ITEMS)
        if study_max_items < 1:
            raise RuntimeError("STUDY_MAX_ITEMS must be a positive integer.")

        quiz_question_count = _read_int("QUIZ_QUESTION_COUNT", DEFAULT_QUESTION_COUNT)
        if quiz_question_count < 1 or quiz_question_count > MAX_QUIZ_QUESTION_COUNT:
            raise RuntimeError(
                f"QUIZ_QUESTION_COUNT must be between 1 and {MAX_QUIZ_QUESTION_COUNT}."
            )

        return cls(
            app_name=app_name,
            app_env=app_env,
            log_level=log_level,
            app_timezone=app_timezone,
            telegram_bot_token=telegram_bot_token,
            openai_api_key=os.getenv("OPENAI_API_KEY") or None,
            tts_model=os.getenv("TTS_MODEL", DEFAULT_TTS_MODEL),
            tts_voice=os.getenv("TTS_VOICE", DEFAULT_TTS_VOICE),
            study_new_limit=study_new_limit,
            study_max_items=study_max_items,
            quiz_question_count=quiz_question_count,
            analytics_enabled=_read_flag("ANALYTICS_ENABLED", app_env == "development"),
        )
