"""Tests for error classification."""

import httpx

from knowledge_pipeline.errors import (
    AlreadyQueued,
    ConfigurationError,
    InvalidTransition,
    KnowledgeNotFound,
    LanguageModelError,
    MalformedResponseError,
    NotionAuthError,
    PublishConflictError,
    PublishPermissionError,
    PublishRejectedError,
    SourceUnavailableError,
    StageError,
    is_retryable,
)


def test_transient_errors_are_retryable():
    for exc in (
        SourceUnavailableError("down"),
        LanguageModelError("429"),
        MalformedResponseError("bad json"),
        PublishConflictError("stale sha"),
    ):
        assert is_retryable(exc), exc


def test_timeouts_and_transport_errors_are_retryable():
    assert is_retryable(TimeoutError())
    assert is_retryable(httpx.ConnectError("refused"))


def test_configuration_and_credential_errors_are_terminal():
    assert not is_retryable(ConfigurationError("missing key"))
    assert not is_retryable(NotionAuthError("401"))
    assert not is_retryable(PublishPermissionError("403"))
    assert not is_retryable(PublishRejectedError("conflict persisted"))


def test_state_and_lookup_errors_are_terminal():
    assert not is_retryable(InvalidTransition("k1", "draft", "article_published"))
    assert not is_retryable(KnowledgeNotFound("k1"))


def test_stage_error_delegates_to_cause():
    """StageError is classified by the error it wraps."""
    assert is_retryable(StageError("generate", "k1", LanguageModelError("503")))
    assert not is_retryable(StageError("publish", "k1", PublishPermissionError("403")))


def test_unclassified_errors_are_retryable():
    assert is_retryable(RuntimeError("surprise"))


def test_messages_carry_context():
    assert "k1" in str(AlreadyQueued("k1", "e1"))
    assert "draft" in str(InvalidTransition("k1", "draft", "article_published", "why"))
