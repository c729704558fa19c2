"""Shared OpenAI client."""

from typing import Optional

from openai import AsyncOpenAI

from config import get_settings

# Singleton instance
_client: Optional[AsyncOpenAI] = None


def get_openai_client() -> AsyncOpenAI:
    """Get or create the OpenAI client singleton."""
    global _client
    if _client is None:
        api_key = get_settings().openai_api_key
        if not api_key:
            raise ValueError("OPENAI_API_KEY must be set")
        _client = AsyncOpenAI(api_key=api_key)
    return _client
