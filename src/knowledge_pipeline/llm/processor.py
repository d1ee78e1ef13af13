"""Language-model collaborator: content analysis and article generation via Gemini.

Calls Gemini with structured output, validates responses via Pydantic and
maps them onto the domain models. Failures are translated into the pipeline
error taxonomy; retry decisions are left to the generation queue.
"""

import logging

from google import genai
from google.genai import types
from google.genai.errors import APIError, ClientError, ServerError
from pydantic import BaseModel, ValidationError

from knowledge_pipeline.cost import extract_usage, log_usage
from knowledge_pipeline.errors import (
    ConfigurationError,
    CredentialError,
    LanguageModelError,
    MalformedResponseError,
)
from knowledge_pipeline.llm.prompts import (
    ANALYSIS_SYSTEM_PROMPT,
    GENERATION_SYSTEM_PROMPT,
    build_analysis_content,
    build_generation_content,
)
from knowledge_pipeline.llm.schemas import LLMAnalysis, LLMArticle
from knowledge_pipeline.models.knowledge import (
    ArticleStats,
    ContentAnalysis,
    GeneratedArticle,
    GenerationOptions,
)

logger = logging.getLogger(__name__)


def _translate_api_error(error: APIError) -> Exception:
    """Map a Gemini API error onto the pipeline error taxonomy."""
    if isinstance(error, ClientError) and error.code in (401, 403):
        return CredentialError(f"Gemini rejected the API key ({error.code})")
    if isinstance(error, ServerError) or error.code == 429:
        return LanguageModelError(f"Gemini API error ({error.code}): {error.message}")
    return LanguageModelError(f"Gemini request failed ({error.code}): {error.message}")


def parse_structured(response: object, schema: type[BaseModel]) -> BaseModel:
    """Return the validated structured payload of a Gemini response.

    Prefers the SDK-parsed object; falls back to validating the raw text.

    Raises:
        MalformedResponseError: If neither yields a valid ``schema`` instance.
    """
    parsed = getattr(response, "parsed", None)
    if isinstance(parsed, schema):
        return parsed
    text = getattr(response, "text", None) or ""
    try:
        return schema.model_validate_json(text)
    except (ValidationError, ValueError) as exc:
        raise MalformedResponseError(
            f"Gemini response did not match {schema.__name__}: {exc}"
        ) from exc


async def _call_gemini(
    client: genai.Client,
    model: str,
    system_prompt: str,
    user_content: str,
    schema: type[BaseModel],
) -> object:
    """Call Gemini with structured output. No retries here."""
    try:
        return await client.aio.models.generate_content(
            model=model,
            contents=user_content,
            config=types.GenerateContentConfig(
                system_instruction=system_prompt,
                response_mime_type="application/json",
                response_schema=schema,
                temperature=1.0,
            ),
        )
    except APIError as exc:
        logger.error("Gemini API error (%s)", exc.code, exc_info=True)
        raise _translate_api_error(exc) from exc


def to_content_analysis(result: LLMAnalysis) -> ContentAnalysis:
    return ContentAnalysis(
        summary=result.summary,
        key_topics=result.key_topics,
        suggested_title=result.suggested_title,
        estimated_article_length=max(result.estimated_article_length, 0),
        difficulty_level=result.difficulty_level,
        target_audience=result.target_audience,
        recommended_structure=result.recommended_structure,
    )


def to_generated_article(result: LLMArticle) -> GeneratedArticle:
    return GeneratedArticle(
        title=result.title,
        emoji=result.emoji or "📝",
        type=result.type,
        topics=[topic.strip().lower() for topic in result.topics if topic.strip()],
        published=False,
        content=result.content,
        metadata=ArticleStats(
            estimated_reading_time=max(result.metadata.estimated_reading_time, 0),
            word_count=max(result.metadata.word_count, 0),
            difficulty=result.metadata.difficulty,
        ),
    )


class GeminiWriter:
    """Analysis and generation calls bound to one Gemini client and model."""

    def __init__(self, client: genai.Client | None, model: str):
        self._client = client
        self.model = model

    def _require_client(self) -> genai.Client:
        if self._client is None:
            raise ConfigurationError("GEMINI_API_KEY is not configured")
        return self._client

    async def analyze(self, content: str, title: str | None = None) -> ContentAnalysis:
        """Analyze knowledge content into a structured ContentAnalysis.

        Raises:
            ConfigurationError: No API key configured, or the key was rejected.
            LanguageModelError: Transient Gemini API failure.
            MalformedResponseError: Response did not match the schema.
        """
        client = self._require_client()
        response = await _call_gemini(
            client,
            self.model,
            ANALYSIS_SYSTEM_PROMPT,
            build_analysis_content(content, title),
            LLMAnalysis,
        )
        result = parse_structured(response, LLMAnalysis)
        log_usage("analysis", self.model, extract_usage(response), title=title)
        return to_content_analysis(result)

    async def generate(
        self,
        content: str,
        analysis: ContentAnalysis,
        options: GenerationOptions | None = None,
    ) -> GeneratedArticle:
        """Generate an article from content and its analysis.

        Raises the same errors as ``analyze``.
        """
        client = self._require_client()
        options = options or GenerationOptions()
        response = await _call_gemini(
            client,
            self.model,
            GENERATION_SYSTEM_PROMPT,
            build_generation_content(content, analysis, options),
            LLMArticle,
        )
        result = parse_structured(response, LLMArticle)
        log_usage("generation", self.model, extract_usage(response), title=result.title)
        return to_generated_article(result)
