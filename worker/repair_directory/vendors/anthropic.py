"""Client utilities for the Anthropic Messages API."""

import logging
from typing import Any, Dict, Optional

import requests

logger = logging.getLogger(__name__)
_SESSION = requests.Session()
_BASE_URL = "https://api.anthropic.com/v1"
_API_VERSION = "2023-06-01"
_RETRYABLE_STATUSES = {408, 409, 429}


class AnthropicError(RuntimeError):
    """Raised when the Messages API returns a non-successful response."""

    def __init__(self, message: str, status_code: Optional[int] = None, retryable: bool = True) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.retryable = retryable


def create_message(
    *,
    system: str,
    user_content: str,
    max_tokens: int,
    model: str,
    api_key: str,
    timeout: int = 60,
) -> Dict[str, Any]:
    if not api_key:
        raise RuntimeError("ANTHROPIC_API_KEY is required")

    body = {
        "model": model,
        "max_tokens": max_tokens,
        "system": system,
        "messages": [{"role": "user", "content": user_content}],
    }
    headers = {
        "x-api-key": api_key,
        "anthropic-version": _API_VERSION,
        "content-type": "application/json",
    }
    try:
        response = _SESSION.post(f"{_BASE_URL}/messages", json=body, headers=headers, timeout=timeout)
    except requests.RequestException as exc:
        raise AnthropicError(f"Messages request failed: {exc}") from exc

    if response.status_code >= 400:
        retryable = response.status_code >= 500 or response.status_code in _RETRYABLE_STATUSES
        logger.error("create_message failed: status=%s body=%s", response.status_code, response.text[:500])
        raise AnthropicError(
            f"Messages API returned HTTP {response.status_code}",
            status_code=response.status_code,
            retryable=retryable,
        )
    return response.json()
