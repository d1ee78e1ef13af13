"""Knowledge item enums and the structured payloads produced by the language model."""

from enum import Enum

from pydantic import BaseModel, Field


class SourceType(str, Enum):
    """Where a knowledge item's content came from."""

    NOTION = "notion"
    FILE = "file"
    TEXT = "text"
    URL = "url"
    BROWSER = "browser"


class KnowledgeStatus(str, Enum):
    """Pipeline stage of a knowledge item."""

    DRAFT = "draft"
    NOTION_REFERENCED = "notion_referenced"
    CONTENT_ANALYZED = "content_analyzed"
    ARTICLE_GENERATED = "article_generated"
    ARTICLE_PUBLISHED = "article_published"
    ERROR = "error"


class SyncFrequency(str, Enum):
    """How often an auto-synced Notion reference should be re-fetched."""

    HOURLY = "hourly"
    DAILY = "daily"
    WEEKLY = "weekly"


class ArticleType(str, Enum):
    """Zenn article type."""

    TECH = "tech"
    IDEA = "idea"
    PERSONAL = "personal"


class DifficultyLevel(str, Enum):
    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"


class ContentAnalysis(BaseModel):
    """Analysis of a knowledge item's content. Used as the Gemini response schema."""

    summary: str = Field(description="Summary of the content, around 200 characters")
    key_topics: list[str] = Field(description="Main topics covered by the content")
    suggested_title: str = Field(description="Recommended article title")
    estimated_article_length: int = Field(
        ge=0, description="Estimated article length in characters"
    )
    difficulty_level: DifficultyLevel = DifficultyLevel.INTERMEDIATE
    target_audience: str = ""
    recommended_structure: list[str] = Field(
        default_factory=list, description="Recommended section outline"
    )


class ArticleStats(BaseModel):
    estimated_reading_time: int = Field(ge=0, description="Reading time in minutes")
    word_count: int = Field(ge=0)
    difficulty: str = ""


class GeneratedArticle(BaseModel):
    """A generated article. Used as the Gemini response schema."""

    title: str
    emoji: str = Field(default="📝", description="A single emoji for the article")
    type: ArticleType = ArticleType.TECH
    topics: list[str] = Field(default_factory=list, description="Topic tags")
    published: bool = False
    content: str = Field(description="Markdown article body")
    metadata: ArticleStats | None = None


class GenerationStyle(str, Enum):
    FORMAL = "formal"
    CASUAL = "casual"
    TECHNICAL = "technical"


class GenerationOptions(BaseModel):
    """Knobs for article generation."""

    style: GenerationStyle = GenerationStyle.CASUAL
    include_code_examples: bool = True
    target_length: int | None = None


class ArticleMetadata(BaseModel):
    """Front-matter fields of a published article."""

    title: str
    emoji: str
    type: ArticleType
    topics: list[str] = []
    published: bool = False
