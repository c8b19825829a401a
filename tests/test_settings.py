import pytest

from src.app.settings import AppSettings


_ENV_NAMES = (
    "APP_NAME",
    "APP_ENV",
    "LOG_LEVEL",
    "APP_TIMEZONE",
    "OPENAI_API_KEY",
    "TTS_MODEL",
    "TTS_VOICE",
    "STUDY_NEW_LIMIT",
    "STUDY_MAX_ITEMS",
    "QUIZ_QUESTION_COUNT",
    "ANALYTICS_ENABLED",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in _ENV_NAMES:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("TELEGRAM_BOT_TOKEN", "123:token")


def test_defaults_are_applied() -> None:
    settings = AppSettings.from_env()

    assert settings.app_name == "Hanja Step"
    assert settings.app_env == "development"
    assert settings.study_new_limit == 20
    assert settings.study_max_items == 50
    assert settings.quiz_question_count == 10
    assert settings.analytics_enabled is True
    assert settings.openai_api_key is None
    assert settings.narration_enabled is False
    assert settings.app_timezone == "Asia/Seoul"
    assert settings.learner_timezone.zone == "Asia/Seoul"


def test_overrides_are_read(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("APP_ENV", "production")
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    monkeypatch.setenv("TTS_VOICE", "nova")
    monkeypatch.setenv("STUDY_NEW_LIMIT", "0")
    monkeypatch.setenv("QUIZ_QUESTION_COUNT", "50")

    settings = AppSettings.from_env()

    assert settings.analytics_enabled is False
    assert settings.narration_enabled is True
    assert settings.tts_voice == "nova"
    assert settings.study_new_limit == 0
    assert settings.quiz_question_count == 50


def test_missing_token_is_rejected(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("TELEGRAM_BOT_TOKEN")

    with pytest.raises(RuntimeError, match="TELEGRAM_BOT_TOKEN"):
        AppSettings.from_env()


@pytest.mark.parametrize(
    ("name", "value"),
    [
        ("STUDY_NEW_LIMIT", "-1"),
        ("STUDY_MAX_ITEMS", "0"),
        ("QUIZ_QUESTION_COUNT", "51"),
        ("QUIZ_QUESTION_COUNT", "ten"),
    ],
)
def test_invalid_numbers_are_rejected(monkeypatch: pytest.MonkeyPatch, name: str, value: str) -> None:
    monkeypatch.setenv(name, value)

    with pytest.raises(RuntimeError, match=name):
        AppSettings.from_env()


def test_timezone_override_and_validation(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("APP_TIMEZONE", "Europe/Berlin")
    assert AppSettings.from_env().learner_timezone.zone == "Europe/Berlin"

    monkeypatch.setenv("APP_TIMEZONE", "Mars/Olympus")
    with pytest.raises(RuntimeError, match="APP_TIMEZONE"):
        AppSettings.from_env()
