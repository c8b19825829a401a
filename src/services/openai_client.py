"""Helpers for configuring the OpenAI client used for narration."""

from openai import AsyncOpenAI


DEFAULT_TIMEOUT_SECONDS = 30.0


def build_openai_client(api_key: str, timeout: float = DEFAULT_TIMEOUT_SECONDS) -> AsyncOpenAI:
    """Create an AsyncOpenAI client with a bounded request timeout."""
    return AsyncOpenAI(api_key=api_key, timeout=timeout)
