import base64
import logging
import time
from typing import Optional

import requests

from .constants import ERROR_PREFIX

logger = logging.getLogger(__name__)

MISSING_KEY_ERROR = f"{ERROR_PREFIX} GEMINI_API_KEY not configured"


def is_error(text) -> bool:
    """True for empty output or the client's ``Error:`` sentinel."""
    return not text or (isinstance(text, str) and text.startswith(ERROR_PREFIX))


def _build_request(api_key: str, parts: list):
    """Build request headers and JSON payload for the Gemini endpoint.

    The payload matches the structure expected by Google/Gemini-style APIs:
    {
      "contents": [ { "role": "user", "parts": [ {"text": ...}, {"inline_data": ...} ] } ]
    }

    Keeping this centralized ensures the structure stays in sync with
    `_extract_text()` which parses the corresponding response shape.
    """
    headers = {'Content-Type': 'application/json', 'x-goog-api-key': api_key}
    data = {'contents': [{'role': 'user', 'parts': parts}]}
    return headers, data


def _extract_text(response_json: dict) -> Optional[str]:
    """Extract plain text from a Gemini-style response JSON.

    Expected shape (minimal):
    {
      "candidates": [
        { "content": { "parts": [ { "text": "..." } ] } }
      ]
    }

    Returns None if any of the expected keys/arrays are missing or empty.
    Text from every part is joined, since longer answers can be split.
    """
    candidates = response_json.get('candidates') or []
    if not candidates:
        return None
    content = candidates[0].get('content') or {}
    parts = content.get('parts') or []
    texts = [p.get('text') for p in parts if isinstance(p.get('text'), str)]
    if not texts:
        return None
    text = ''.join(texts).strip()
    return text or None


def _backoff_sleep(attempt: int, backoff_factor: int) -> None:
    """Sleep using exponential backoff based on the attempt number."""
    wait_time = max(0, backoff_factor ** attempt)
    if wait_time:
        logger.warning("Gemini rate limit or network error. Retrying in %s seconds...", wait_time)
        time.sleep(wait_time)


class GeminiClient:
    """Thin REST client for the Gemini ``generateContent`` endpoint.

    Built once from ``Settings`` and handed to the services that need a
    model. Calls never raise on HTTP problems: they return the generated text,
    or a string prefixed with ``Error:`` describing the failure.
    """

    def __init__(self, api_key, url, timeout=120, retries=3, backoff_factor=2):
        self.api_key = api_key
        self.url = url
        self.timeout = timeout
        self.retries = retries
        self.backoff_factor = backoff_factor

    @classmethod
    def from_settings(cls, settings):
        # One attempt per call by default; only the question orchestrator loops.
        return cls(settings.gemini_api_key, settings.gemini_url, retries=settings.gemini_retries)

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def generate(self, prompt: str) -> str:
        """Send a text prompt and return the model's text."""
        return self._call([{'text': prompt}])

    def generate_with_audio(self, prompt: str, audio: bytes, mime_type: str) -> str:
        """Send a prompt plus an inline audio clip (used for transcription)."""
        parts = [
            {'text': prompt},
            {'inline_data': {'mime_type': mime_type, 'data': base64.b64encode(audio).decode('ascii')}},
        ]
        return self._call(parts)

    def _call(self, parts: list) -> str:
        """Call the API with simple retry and response parsing.

        - Attempts up to `retries` times.
          * On HTTP 429, sleeps with `_backoff_sleep()` then retries.
          * On other HTTP errors, returns an error string including status code.
          * On network errors (RequestException), retries until attempts exhausted.
        - On 2xx, parses JSON and extracts text via `_extract_text()`.
        """
        if not self.configured:
            return MISSING_KEY_ERROR

        headers, data = _build_request(self.api_key, parts)

        for attempt in range(self.retries):
            try:
                resp = requests.post(self.url, headers=headers, json=data, timeout=self.timeout)
                resp.raise_for_status()

                payload = resp.json()
                logger.debug("Gemini raw response: %s", payload)
                text = _extract_text(payload)
                if text:
                    return text
                return f"{ERROR_PREFIX} Unexpected API response format: {resp.text}"

            except requests.exceptions.HTTPError as e:
                status = getattr(e.response, 'status_code', None)
                if status == 429 and attempt < self.retries - 1:
                    _backoff_sleep(attempt, self.backoff_factor)
                    continue
                error_text = getattr(e.response, 'text', '')
                logger.error("Gemini request failed with status %s", status)
                return f"{ERROR_PREFIX} API request failed with status {status}: {error_text}"

            except requests.RequestException as e:
                if attempt < self.retries - 1:
                    _backoff_sleep(attempt, self.backoff_factor)
                    continue
                logger.error("Gemini request failed: %s", e)
                return f"{ERROR_PREFIX} Request failed: {str(e)}"

        return f"{ERROR_PREFIX} Exhausted retries without a successful response"
