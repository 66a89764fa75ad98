"""
Generative text client used for optional query enrichment.

complete() never raises: without an API key, or on any transport or
response problem, it returns the fixed "not configured" message, which
callers check with is_not_configured() before parsing anything.
"""

import asyncio
from typing import Dict, Optional
import logging

import aiohttp

from ..config.search_config import GENERATIVE_CONFIG

logger = logging.getLogger("search")

NOT_CONFIGURED_MESSAGE = GENERATIVE_CONFIG["not_configured_message"]


def is_not_configured(text: Optional[str]) -> bool:
    """True when ``text`` is (or starts with) the fixed fallback message."""
    return not text or text.startswith("AI is not configured")


class GenerativeClient:
    """Minimal async client for a Gemini-style generateContent endpoint."""

    def __init__(self, config: Optional[Dict] = None):
        self.config = config or GENERATIVE_CONFIG
        self.api_key = self.config.get("api_key") or ""
        self.model = self.config.get("model", "gemini-1.5-flash")
        self.timeout_seconds = float(self.config.get("timeout_seconds", 8.0))

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    async def complete(self, prompt: str) -> str:
        """
        Generate a text completion for ``prompt``.

        Returns:
            Model text, or NOT_CONFIGURED_MESSAGE
        """
        if not self.configured:
            return NOT_CONFIGURED_MESSAGE

        url = self.config["endpoint"].format(model=self.model)
        payload = {"contents": [{"role": "user", "parts": [{"text": prompt}]}]}

        try:
            timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.post(url, params={"key": self.api_key}, json=payload) as response:
                    if response.status != 200:
                        logger.warning(f"Generative call returned HTTP {response.status}")
                        return NOT_CONFIGURED_MESSAGE
                    data = await response.json()

            parts = data["candidates"][0]["content"]["parts"]
            text = "".join(part.get("text", "") for part in parts)
            return text or NOT_CONFIGURED_MESSAGE

        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning(f"Generative call failed: {e}")
        except (KeyError, IndexError, TypeError, ValueError) as e:
            logger.warning(f"Generative response not understood: {e}")

        return NOT_CONFIGURED_MESSAGE
