# ai_gateway.py
import logging
from typing import Any, Optional

from openai import OpenAI

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gpt-4o-mini"

SYSTEM_TEXT = "You are an expert CV writer. You are concise, professional and achievement-focused."
SYSTEM_JSON = (
    "You are an expert CV writer that answers with raw JSON only. "
    "Never wrap the JSON in markdown and never add commentary."
)


class AIConfigError(RuntimeError):
    """No model credential configured. Maps to 'service unavailable'."""


class AIProviderError(RuntimeError):
    """Transport or provider-side failure while calling the model."""


def _get(obj: Any, key: str) -> Any:
    if obj is None:
        return None
    if isinstance(obj, dict):
        return obj.get(key)
    return getattr(obj, key, None)


def _first(seq: Any) -> Any:
    if isinstance(seq, (list, tuple)) and seq:
        return seq[0]
    return None


def extract_text(response: Any) -> str:
    """
    Pull the text out of a provider response.

    Accepted shapes, in order:
      - a direct text accessor: `output_text` / `text` (string or zero-arg callable)
      - chat completions: choices[0].message.content
      - candidates/parts: candidates[0].content.parts[0].text, or candidates[0].text
    Returns "" when none of them yields text.
    """
    for attr in ("output_text", "text"):
        value = _get(response, attr)
        if callable(value):
            try:
                value = value()
            except Exception:
                logger.warning(f"[AI] response.{attr}() raised, trying nested shapes")
                value = None
        if isinstance(value, str) and value.strip():
            return value.strip()

    content = _get(_get(_first(_get(response, "choices")), "message"), "content")
    if isinstance(content, str) and content.strip():
        return content.strip()

    candidate = _first(_get(response, "candidates"))
    if candidate is not None:
        part = _first(_get(_get(candidate, "content"), "parts"))
        text = _get(part, "text")
        if isinstance(text, str) and text.strip():
            return text.strip()
        text = _get(candidate, "text")
        if isinstance(text, str) and text.strip():
            return text.strip()

    logger.error("[AI] Could not extract text from model response")
    return ""


class AIGateway:
    """
    Single point of contact with the model provider.

    Built once at startup and handed to request handlers. Without an API key
    every call fails fast with AIConfigError and the provider is never contacted.
    Failures are not retried; the user re-triggers the action.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = DEFAULT_MODEL,
        timeout: float = 60.0,
        client: Any = None,
    ):
        self.api_key = (api_key or "").strip()
        self.model = model
        self.timeout = timeout
        self._client = client

    @classmethod
    def from_settings(cls, settings) -> "AIGateway":
        gateway = cls(
            api_key=settings.openai_api_key,
            model=settings.openai_model,
            timeout=settings.openai_timeout,
        )
        if not gateway.configured:
            logger.warning("[AI] OPENAI_API_KEY is not set, AI generation will answer 503")
        return gateway

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def _get_client(self):
        if not self.configured:
            raise AIConfigError("AI Service is not configured or API key is missing.")
        if self._client is None:
            self._client = OpenAI(api_key=self.api_key, timeout=self.timeout, max_retries=0)
        return self._client

    def generate(self, prompt: str, expects_json: bool = False) -> str:
        client = self._get_client()

        try:
            response = client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_JSON if expects_json else SYSTEM_TEXT},
                    {"role": "user", "content": prompt},
                ],
                temperature=0.2 if expects_json else 0.4,
            )
        except Exception as e:
            logger.exception("[AI] Model call failed")
            raise AIProviderError(f"Failed to generate AI content: {e}") from e

        return extract_text(response)
