"""Text-to-speech narration of characters through the OpenAI audio API."""

from __future__ import annotations

import logging

from openai import AsyncOpenAI


LOGGER = logging.getLogger(__name__)

DEFAULT_TTS_MODEL = "gpt-4o-mini-tts"
DEFAULT_TTS_VOICE = "alloy"


def build_narration_text(meaning: str, reading: str, repeat: int = 2) -> str:
    """Return the "meaning reading" phrase read aloud for a character, e.g. "메 산"."""
    phrase = f"{meaning} {reading}".strip()
    return ". ".join([phrase] * max(1, repeat)) + "."


class Narrator:
    """Synthesises Korean narration as OGG/Opus audio suitable for voice messages."""

    def __init__(
        self,
        client: AsyncOpenAI,
        model: str = DEFAULT_TTS_MODEL,
        voice: str = DEFAULT_TTS_VOICE,
    ) -> None:
        self._client = client
        self._model = model
        self._voice = voice

    async def synthesize(self, text: str) -> bytes:
        response = await self._client.audio.speech.create(
            model=self._model,
            voice=self._voice,
            input=text,
            response_format="opus",
        )
        audio = response.content
        LOGGER.debug("Synthesised %s bytes of narration for %r.", len(audio), text)
        return audio

    async def narrate_char(self, meaning: str, reading: str, repeat: int = 2) -> bytes:
        return await self.synthesize(build_narration_text(meaning, reading, repeat))
