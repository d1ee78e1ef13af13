"""Tests for token usage extraction and cost logging."""

import logging
from types import SimpleNamespace

import pytest

from knowledge_pipeline.cost import TokenUsage, extract_usage, log_usage


def _make_response(prompt=None, completion=None, thoughts=None) -> SimpleNamespace:
    metadata = SimpleNamespace(
        prompt_token_count=prompt,
        candidates_token_count=completion,
        thoughts_token_count=thoughts,
    )
    return SimpleNamespace(usage_metadata=metadata)


def test_extract_usage_counts_thinking_as_output():
    """1M input + 100K output + 100K thinking = $0.50 + $0.60."""
    usage = extract_usage(_make_response(1_000_000, 100_000, 100_000))

    assert usage.total_tokens == 1_200_000
    assert usage.cost_usd == pytest.approx(1.10)


def test_extract_usage_missing_counts():
    usage = extract_usage(_make_response())
    assert usage == TokenUsage()
    assert usage.cost_usd == 0.0


def test_extract_usage_without_metadata():
    assert extract_usage(SimpleNamespace()).total_tokens == 0


def test_log_usage_emits_structured_fields(caplog):
    usage = TokenUsage(prompt_tokens=100, completion_tokens=50)

    with caplog.at_level(logging.INFO, logger="knowledge_pipeline.cost"):
        log_usage("analysis", "gemini-3-flash-preview", usage, title="Intro to Widgets")

    (record,) = caplog.records
    assert record.getMessage() == "Gemini analysis complete"
    assert record.stage == "analysis"
    assert record.total_tokens == 150
    assert record.cost_usd == pytest.approx(0.0002)
