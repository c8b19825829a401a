import logging
from types import SimpleNamespace

import pytest

from src.services import EventTracker, Narrator
from src.services.narration import build_narration_text


class _StubSpeech:
    def __init__(self) -> None:
        self.calls: list[dict] = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        return SimpleNamespace(content=b"OggS-audio")


def test_narration_text_repeats_phrase() -> None:
    assert build_narration_text("메", "산") == "메 산. 메 산."
    assert build_narration_text("메", "산", repeat=0) == "메 산."


@pytest.mark.asyncio
async def test_narrator_requests_opus_audio() -> None:
    speech = _StubSpeech()
    client = SimpleNamespace(audio=SimpleNamespace(speech=speech))
    narrator = Narrator(client, model="tts-test", voice="nova")

    audio = await narrator.narrate_char("메", "산")

    assert audio == b"OggS-audio"
    assert speech.calls == [
        {
            "model": "tts-test",
            "voice": "nova",
            "input": "메 산. 메 산.",
            "response_format": "opus",
        }
    ]


def test_event_tracker_logs_only_when_enabled(caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.INFO, logger="src.services.analytics")

    EventTracker(enabled=False).track("study_started", {"grade": 8})
    assert not caplog.records

    EventTracker(enabled=True).track("study_started", {"grade": 8})
    assert "[analytics] study_started {'grade': 8}" in caplog.text
