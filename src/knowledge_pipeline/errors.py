"""Error taxonomy for the pipeline.

Components raise these; the generation queue is the only place that turns
them into retry-or-fail decisions (via ``is_retryable``).
"""

import httpx


class PipelineError(Exception):
    """Base class for all pipeline errors."""


# --- Retryable ---


class TransientError(PipelineError):
    """A failure that a later attempt may not hit (network, rate limit, sampling)."""


class SourceUnavailableError(TransientError):
    """The content source could not be reached or returned a server error."""


class LanguageModelError(TransientError):
    """The language-model call failed with a retryable API error."""


class MalformedResponseError(TransientError):
    """The language model returned output that does not match the expected schema."""


class PublishNetworkError(TransientError):
    """The Git-hosting API could not be reached or returned a server error."""


class PublishConflictError(TransientError):
    """The remote file changed under us (stale version identifier)."""


class CycleRestarted(TransientError):
    """A sync replaced the item's content while a stage ran; the stage result was dropped."""

    def __init__(self, knowledge_id: str, target: str):
        self.knowledge_id = knowledge_id
        self.target = target
        super().__init__(
            f"Knowledge {knowledge_id} changed upstream before it could reach {target}"
        )


# --- Terminal ---


class ConfigurationError(PipelineError):
    """A missing or invalid credential/setting. Never retried automatically."""


class CredentialError(ConfigurationError):
    """An external API rejected the configured credential."""


class NotionAuthError(CredentialError):
    """Notion returned 401 for the configured integration token."""


class PublishPermissionError(CredentialError):
    """The Git-hosting API refused the write (401/403)."""


class PublishRejectedError(PipelineError):
    """The remote kept rejecting the write after the conflict retry was spent."""


class InvalidTransition(PipelineError):
    """A knowledge status change that the state machine does not allow."""

    def __init__(self, knowledge_id: str, current: str, target: str, reason: str = ""):
        self.knowledge_id = knowledge_id
        self.current = current
        self.target = target
        detail = f": {reason}" if reason else ""
        super().__init__(
            f"Knowledge {knowledge_id} cannot move from {current} to {target}{detail}"
        )


class AlreadyQueued(PipelineError):
    """The knowledge item already has a pending or processing queue entry."""

    def __init__(self, knowledge_id: str, entry_id: str):
        self.knowledge_id = knowledge_id
        self.entry_id = entry_id
        super().__init__(f"Knowledge {knowledge_id} is already queued (entry {entry_id})")


class KnowledgeNotFound(PipelineError):
    """No knowledge item with the given id."""


class ReferenceNotFound(PipelineError):
    """No Notion reference with the given id."""


class StageError(PipelineError):
    """A pipeline stage failed for a knowledge item. Wraps the original cause."""

    def __init__(self, stage: str, knowledge_id: str, cause: BaseException):
        self.stage = stage
        self.knowledge_id = knowledge_id
        self.cause = cause
        super().__init__(f"{stage} failed for knowledge {knowledge_id}: {cause}")


def is_retryable(exc: BaseException) -> bool:
    """Decide whether a failure is worth another queue attempt.

    Transient errors, timeouts and transport errors are retried. Configuration
    and credential errors, invalid transitions and missing rows are not.
    Anything unclassified is retried; the queue's retry budget bounds it.
    """
    if isinstance(exc, StageError):
        return is_retryable(exc.cause)
    if isinstance(exc, (TransientError, TimeoutError, httpx.TransportError)):
        return True
    if isinstance(
        exc,
        (
            ConfigurationError,
            PublishRejectedError,
            InvalidTransition,
            KnowledgeNotFound,
            ReferenceNotFound,
        ),
    ):
        return False
    return True
