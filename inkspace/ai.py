"""Artist bio drafting through the Gemini text-generation API."""
from __future__ import annotations

import logging
from typing import Optional

import httpx

from .errors import ConfigurationError, ProviderError

logger = logging.getLogger(__name__)

GEMINI_URL = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"

BIO_PROMPT = (
    'Generate a short, professional, and creative biography for a tattoo artist named "{name}" '
    'who specializes in "{specialty}". The tone should be inspiring and welcoming to potential '
    "clients. Make it about 2-3 sentences long."
)


class BioGenerator:
    def __init__(
        self,
        api_key: Optional[str],
        model: str = "gemini-2.5-flash",
        client: Optional[httpx.Client] = None,
        timeout: float = 10.0,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.client = client
        self.timeout = timeout

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    def generate_bio(self, name: str, specialty: str) -> str:
        """Return a 2-3 sentence bio, or raise; there is no retry."""
        if not self.api_key:
            raise ConfigurationError("AI features are unavailable: GEMINI_API_KEY is not configured.")

        body = {"contents": [{"parts": [{"text": BIO_PROMPT.format(name=name, specialty=specialty)}]}]}
        client = self.client or httpx.Client(timeout=self.timeout)
        try:
            response = client.post(
                GEMINI_URL.format(model=self.model),
                params={"key": self.api_key},
                json=body,
            )
            response.raise_for_status()
            data = response.json()
            text = data["candidates"][0]["content"]["parts"][0]["text"]
        except (httpx.HTTPError, ValueError, KeyError, IndexError, TypeError) as exc:
            logger.error("Error generating bio with Gemini: %s", exc)
            raise ProviderError("Failed to generate bio with AI. Please try again.") from exc
        finally:
            if self.client is None:
                client.close()

        return text.strip()
