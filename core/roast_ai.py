"""
Roast Generator - AI roast suggestions via xAI Grok.

xAI API is OpenAI-compatible (https://api.x.ai/v1), so the stock
AsyncOpenAI client is used with a different base_url.
One call per suggestion, no retries: the composer decides what a failure means.
"""

import logging
from typing import Optional

from openai import AsyncOpenAI

from .constants import ROAST_PROTOCOL
from .errors import ExternalServiceError, ValidationError

logger = logging.getLogger("roasted.roast_ai")

ROAST_SYSTEM_PROMPT = (
    "You are Grok, an AI with access to X (formerly Twitter) timeline data. "
    "Your job is to create a funny, witty roast about a person based on their X account activity. "
    "The roast should be humorous but not overly mean or offensive. "
    "Focus on the aspects mentioned in the user's suggestions. "
    f"Keep the roast concise (max {ROAST_PROTOCOL.MAX_ROAST_CHARS} characters) and entertaining. "
    "Make the roasts based on the handle's X account activity."
)


def build_roast_messages(context: str, subject_handle: Optional[str]) -> list[dict]:
    handle = (subject_handle or "unknown").lstrip("@")
    return [
        {"role": "system", "content": ROAST_SYSTEM_PROMPT},
        {
            "role": "user",
            "content": f"Generate a funny roast for X user @{handle} based on these suggestions: {context}",
        },
    ]


class RoastGenerator:
    """
    Usage:
        gen = RoastGenerator(api_key=settings.xai_api_key)
        text = await gen.generate("always wears the same hat", "bob")
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.x.ai/v1",
        model: str = "grok-2-latest",
        client: Optional[AsyncOpenAI] = None,
    ):
        self.model = model
        self._client = client
        if self._client is None and api_key:
            self._client = AsyncOpenAI(api_key=api_key, base_url=base_url, timeout=30.0)
            logger.info(f"Roast generator: {model} enabled")
        self._calls = 0
        self._failures = 0

    @property
    def configured(self) -> bool:
        return self._client is not None

    async def generate(self, context: str, subject_handle: Optional[str] = None) -> str:
        """Return one roast suggestion. Raises ValidationError / ExternalServiceError."""
        if not context or not context.strip():
            raise ValidationError("Context is required")
        if self._client is None:
            raise ExternalServiceError("roast_ai", "AI provider not configured")

        self._calls += 1
        try:
            response = await self._client.chat.completions.create(
                model=self.model,
                messages=build_roast_messages(context.strip(), subject_handle),
            )
            text = (response.choices[0].message.content or "").strip()
        except Exception as e:
            self._failures += 1
            logger.warning(f"Roast generation failed: {type(e).__name__}: {e}")
            raise ExternalServiceError("roast_ai", "Failed to generate roast") from e

        if not text:
            self._failures += 1
            raise ExternalServiceError("roast_ai", "empty completion")

        logger.info(f"Roast generated for @{(subject_handle or 'unknown').lstrip('@')} ({len(text)} chars)")
        return text

    def get_status(self) -> dict:
        return {
            "configured": self.configured,
            "model": self.model,
            "calls": self._calls,
            "failures": self._failures,
        }
