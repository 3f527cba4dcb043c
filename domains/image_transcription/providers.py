"""
Transcription providers.

Each provider sends one image plus the configured prompts to a vision model
and returns the transcribed text. Failures are logged and reported as None;
retry and backoff, if any, belong to the provider.

Provides:
- OpenAI chat completions (also Mistral and OpenAI-compatible servers)
- Anthropic messages
- Google Gemini generateContent
"""

import base64
import time
from typing import Any, Dict, Optional, Protocol

import httpx
from loguru import logger

from app.utils.config import Settings

ANTHROPIC_API_URL = "https://api.anthropic.com/v1/messages"
ANTHROPIC_VERSION = "2023-06-01"
GOOGLE_API_URL = "https://generativelanguage.googleapis.com/v1/models"
MISTRAL_API_URL = "https://api.mistral.ai/v1/chat/completions"


class TranscriptionProvider(Protocol):
    """Turns image bytes into text."""

    async def transcribe(
        self,
        image: bytes,
        system_prompt: str,
        user_prompt: str,
        media_type: str = "image/jpeg",
    ) -> Optional[str]: ...


class HttpTranscriptionProvider:
    """Shared request handling for HTTP vision APIs."""

    label = "AI provider"

    def __init__(
        self,
        api_key: str,
        model: str,
        max_tokens: int = 4000,
        timeout: float = 120.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize provider.

        Args:
            api_key: Vendor API key
            model: Model name
            max_tokens: Output token limit
            timeout: Request timeout in seconds
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self.api_key = api_key
        self.model = model
        self.max_tokens = max_tokens
        self.timeout = timeout
        self.transport = transport

    def _check_config(self) -> bool:
        if not self.api_key:
            logger.error(f"{self.label} API key is missing.")
            return False
        if not self.model:
            logger.error(f"{self.label} model is not configured.")
            return False
        return True

    def build_request(
        self, image_b64: str, media_type: str, system_prompt: str, user_prompt: str
    ) -> tuple[str, Dict[str, str], Dict[str, Any]]:
        """Return (url, headers, json body) for the vendor API."""
        raise NotImplementedError

    def extract_text(self, data: Dict[str, Any]) -> Optional[str]:
        raise NotImplementedError

    async def transcribe(
        self,
        image: bytes,
        system_prompt: str,
        user_prompt: str,
        media_type: str = "image/jpeg",
    ) -> Optional[str]:
        """
        Transcribe an image.

        Args:
            image: Raw image bytes
            system_prompt: System instruction
            user_prompt: Per-image instruction
            media_type: MIME type of ``image``

        Returns:
            Transcribed text or None if failed
        """
        if not self._check_config():
            return None

        image_b64 = base64.b64encode(image).decode("ascii")
        url, headers, body = self.build_request(image_b64, media_type, system_prompt, user_prompt)

        logger.debug(f"Sending image to {self.label} ({self.model})...")
        started = time.monotonic()

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(url, headers=headers, json=body)

            if response.status_code < 200 or response.status_code >= 300:
                logger.error(f"{self.label} API error: {self._error_details(response)}")
                return None

            text = self.extract_text(response.json())
            if not text or not text.strip():
                logger.error(f"{self.label} response missing transcription content")
                return None

            logger.success(
                f"{self.label} response received ({time.monotonic() - started:.1f}s)"
            )
            return text.strip()

        except Exception as e:
            logger.error(f"{self.label} transcription failed: {e}")
            return None

    @staticmethod
    def _error_details(response: httpx.Response) -> str:
        try:
            message = response.json().get("error", {}).get("message")
        except Exception:
            message = None
        return message or response.text or f"HTTP status {response.status_code}"


class OpenAIChatProvider(HttpTranscriptionProvider):
    """OpenAI-style chat completions with an image_url content part."""

    label = "OpenAI"

    def __init__(self, api_key: str, model: str, url: str, label: Optional[str] = None, **kwargs):
        super().__init__(api_key, model, **kwargs)
        self.url = url
        if label:
            self.label = label

    def _check_config(self) -> bool:
        if not self.url:
            logger.error(f"{self.label} endpoint URL is not configured.")
            return False
        return super()._check_config()

    def build_request(self, image_b64, media_type, system_prompt, user_prompt):
        body = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": user_prompt},
                        {
                            "type": "image_url",
                            "image_url": {"url": f"data:{media_type};base64,{image_b64}"},
                        },
                    ],
                },
            ],
            "max_tokens": self.max_tokens,
        }
        headers = {"Authorization": f"Bearer {self.api_key}"}
        return self.url, headers, body

    def extract_text(self, data):
        choices = data.get("choices") or []
        if not choices:
            return None
        return (choices[0].get("message") or {}).get("content")


class AnthropicProvider(HttpTranscriptionProvider):
    """Anthropic messages API with a base64 image block."""

    label = "Anthropic"

    def build_request(self, image_b64, media_type, system_prompt, user_prompt):
        body = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "system": system_prompt,
            "messages": [
                {
                    "role": "user",
                    "content": [
                        {
                            "type": "image",
                            "source": {"type": "base64", "media_type": media_type, "data": image_b64},
                        },
                        {"type": "text", "text": user_prompt},
                    ],
                }
            ],
        }
        headers = {"x-api-key": self.api_key, "anthropic-version": ANTHROPIC_VERSION}
        return ANTHROPIC_API_URL, headers, body

    def extract_text(self, data):
        for block in data.get("content") or []:
            if block.get("type") == "text":
                return block.get("text")
        return None


class GoogleProvider(HttpTranscriptionProvider):
    """Google Gemini generateContent with inline image data."""

    label = "Google Gemini"

    def build_request(self, image_b64, media_type, system_prompt, user_prompt):
        body = {
            "contents": [
                {
                    "parts": [
                        {"text": f"{system_prompt}\n\n{user_prompt}"},
                        {"inline_data": {"mime_type": media_type, "data": image_b64}},
                    ]
                }
            ],
            "generationConfig": {"maxOutputTokens": self.max_tokens},
        }
        url = f"{GOOGLE_API_URL}/{self.model}:generateContent?key={self.api_key}"
        return url, {}, body

    def extract_text(self, data):
        candidates = data.get("candidates") or []
        if not candidates:
            return None
        parts = (candidates[0].get("content") or {}).get("parts") or []
        return parts[0].get("text") if parts else None


def build_transcription_provider(
    settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None
) -> HttpTranscriptionProvider:
    """
    Create the provider selected in settings.

    Args:
        settings: Application settings
        transport: Optional httpx transport override

    Returns:
        Configured provider
    """
    common = {
        "max_tokens": settings.max_tokens,
        "timeout": settings.request_timeout,
        "transport": transport,
    }

    if settings.provider == "anthropic":
        return AnthropicProvider(settings.anthropic_api_key, settings.anthropic_model, **common)

    if settings.provider == "google":
        return GoogleProvider(settings.google_api_key, settings.google_model, **common)

    if settings.provider == "mistral":
        return OpenAIChatProvider(
            settings.mistral_api_key,
            settings.mistral_model,
            url=MISTRAL_API_URL,
            label="Mistral",
            **common,
        )

    if settings.provider == "openai-compatible":
        endpoint = settings.openai_compatible_endpoint.rstrip("/")
        return OpenAIChatProvider(
            # Some local servers need a non-empty key
            settings.openai_compatible_api_key or "not-required",
            settings.openai_compatible_model,
            url=f"{endpoint}/v1/chat/completions" if endpoint else "",
            label="OpenAI-compatible",
            **common,
        )

    base_url = settings.openai_base_url.rstrip("/")
    return OpenAIChatProvider(
        settings.openai_api_key,
        settings.openai_model,
        url=f"{base_url}/v1/chat/completions",
        **common,
    )
