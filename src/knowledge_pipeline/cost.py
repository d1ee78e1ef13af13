"""Gemini token usage and cost, logged once per language-model call."""

import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)

# Gemini 3 Flash list prices, USD per token
INPUT_PRICE_PER_TOKEN = 0.50 / 1_000_000
OUTPUT_PRICE_PER_TOKEN = 3.00 / 1_000_000


@dataclass
class TokenUsage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    thinking_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens + self.thinking_tokens

    @property
    def cost_usd(self) -> float:
        # Thinking tokens are billed at the output rate
        billed_output = self.completion_tokens + self.thinking_tokens
        return self.prompt_tokens * INPUT_PRICE_PER_TOKEN + billed_output * OUTPUT_PRICE_PER_TOKEN


def extract_usage(response: object) -> TokenUsage:
    """Read ``usage_metadata`` off a GenerateContentResponse. Missing counts read as 0."""
    metadata = getattr(response, "usage_metadata", None)
    return TokenUsage(
        prompt_tokens=getattr(metadata, "prompt_token_count", 0) or 0,
        completion_tokens=getattr(metadata, "candidates_token_count", 0) or 0,
        thinking_tokens=getattr(metadata, "thoughts_token_count", 0) or 0,
    )


def log_usage(stage: str, model: str, usage: TokenUsage, title: str | None = None) -> None:
    logger.info(
        "Gemini %s complete",
        stage,
        extra={
            "stage": stage,
            "title": title,
            "model": model,
            "prompt_tokens": usage.prompt_tokens,
            "completion_tokens": usage.completion_tokens,
            "thinking_tokens": usage.thinking_tokens,
            "total_tokens": usage.total_tokens,
            "cost_usd": round(usage.cost_usd, 6),
        },
    )
