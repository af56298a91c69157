"""Generate short e-scooter repair summaries for stores."""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Optional

from repair_directory.core.rate_limiter import RateLimiter
from repair_directory.core.retry import FixedDelay, NonRetryableError, RetryExecutor
from repair_directory.etl.store_text import redact_store_text
from repair_directory.models import FormattedStore, StoreSummary, TokenUsage
from repair_directory.vendors import anthropic

logger = logging.getLogger(__name__)

MAX_OUTPUT_TOKENS = 250
CHARS_PER_TOKEN = 4

SYSTEM_PROMPT = """You are a specialized e-scooter repair shop analyzer. Your role is to evaluate business data and determine their e-scooter repair capabilities across three service tiers:

1. Basic: Tire repairs, brake adjustments
2. Electrical: Battery service, electrical components, diagnostics
3. Advanced: Structural repairs, accident damage, aftermarket modifications

For each business, you must:
- Clearly state if e-scooter repairs are confirmed, probable, or not offered
- Specify which service tiers they cover (if known)
- Note if they're primarily a bike/e-bike shop that happens to service e-scooters
- Provide a summary in exactly one paragraph (maximum 75 words)
- Maintain a factual, neutral tone
- Never include advice about calling ahead or checking availability
- Never add any text before or after the summary paragraph"""

USER_PROMPT = """Analyze this business data and create a single paragraph summary (maximum 75 words) that:

1. States whether e-scooter repairs are:
   - Confirmed (explicitly mentioned)
   - Probable (based on related services)
   - Not offered

2. If repairs are offered, specify which service tiers:
   - Basic (tires, brakes)
   - Electrical (battery, components)
   - Advanced (structural, modifications)

3. Include relevant business characteristics (experience, specialization, etc.)

Do not include:
Advice about calling ahead
Disclaimers or qualifications
Any text before or after the summary paragraph

Business data from Google Maps:
"""

MessageSender = Callable[..., Dict[str, Any]]


class SummaryValidationError(NonRetryableError):
    """Raised when the provider response lacks summary text or token usage."""


def estimate_tokens(*texts: str) -> int:
    return sum(len(text) for text in texts) // CHARS_PER_TOKEN


def parse_summary_response(place_id: str, payload: Dict[str, Any]) -> StoreSummary:
    content = payload.get("content") if isinstance(payload, dict) else None
    text_blocks = [
        block.get("text", "")
        for block in content or []
        if isinstance(block, dict) and block.get("type") == "text"
    ]
    summary_text = " ".join(part.strip() for part in text_blocks if part and part.strip())
    if not summary_text:
        raise SummaryValidationError(f"Empty summary returned for {place_id}")

    usage = payload.get("usage")
    if not isinstance(usage, dict) or "input_tokens" not in usage or "output_tokens" not in usage:
        raise SummaryValidationError(f"Missing token usage for {place_id}")

    return StoreSummary(
        place_id=place_id,
        summary_text=summary_text,
        token_usage=TokenUsage(
            input_tokens=int(usage["input_tokens"]),
            output_tokens=int(usage["output_tokens"]),
        ),
    )


class SummaryGenerator:
    """Calls the summarization provider through a shared limiter and retry policy."""

    def __init__(
        self,
        *,
        api_key: str,
        model: str,
        rate_limiter: RateLimiter,
        retry: Optional[RetryExecutor] = None,
        send: Optional[MessageSender] = None,
        max_output_tokens: int = MAX_OUTPUT_TOKENS,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.rate_limiter = rate_limiter
        self.retry = retry or RetryExecutor(3, FixedDelay(65.0))
        self._send = send or anthropic.create_message
        self.max_output_tokens = max_output_tokens

    def summarize(self, store: FormattedStore) -> StoreSummary:
        user_content = USER_PROMPT + store.store_text
        logger.debug("Store text for %s:\n%s", store.place_id, redact_store_text(store.store_text))

        def attempt() -> StoreSummary:
            self.rate_limiter.reserve(estimate_tokens(SYSTEM_PROMPT, user_content))
            payload = self._send(
                system=SYSTEM_PROMPT,
                user_content=user_content,
                max_tokens=self.max_output_tokens,
                model=self.model,
                api_key=self.api_key,
            )
            return parse_summary_response(store.place_id, payload)

        summary = self.retry.execute(attempt, f"Summary for {store.place_id}")
        logger.info(
            "Summarized %s (tokens in=%d out=%d)",
            store.place_id,
            summary.token_usage.input_tokens,
            summary.token_usage.output_tokens,
        )
        return summary
