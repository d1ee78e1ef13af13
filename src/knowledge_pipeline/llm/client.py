"""Gemini client factory.

Builds a genai.Client configured with the API key from settings. Uses a
60-second HTTP timeout. Does NOT configure HttpRetryOptions: the generation
queue owns retries, so the client fails fast.
"""

from google import genai
from google.genai import types

from knowledge_pipeline.config import Settings


def create_gemini_client(settings: Settings) -> genai.Client | None:
    """Return a Gemini client, or None when no API key is configured.

    A missing key is reported as a ConfigurationError by the writer on first
    use rather than failing application startup.
    """
    if not settings.gemini_api_key:
        return None
    return genai.Client(
        api_key=settings.gemini_api_key,
        http_options=types.HttpOptions(timeout=60_000),
    )
