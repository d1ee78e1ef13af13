"""LLM response schemas for Gemini structured output.

Kept separate from the domain models: only fields the LLM generates, no
defaults. The processor maps them onto ContentAnalysis / GeneratedArticle.
"""

from pydantic import BaseModel, Field

from knowledge_pipeline.models.knowledge import ArticleType, DifficultyLevel


class LLMAnalysis(BaseModel):
    """Schema for the content-analysis call."""

    summary: str = Field(description="Summary of the content, around 200 characters")
    key_topics: list[str] = Field(min_length=1, description="3-5 key topics")
    suggested_title: str = Field(description="Recommended article title")
    estimated_article_length: int = Field(description="Target article length in characters")
    difficulty_level: DifficultyLevel
    target_audience: str = Field(description="Who the article is for")
    recommended_structure: list[str] = Field(description="Section outline, in order")


class LLMArticleStats(BaseModel):
    estimated_reading_time: int = Field(description="Reading time in minutes")
    word_count: int
    difficulty: str


class LLMArticle(BaseModel):
    """Schema for the article-generation call."""

    title: str = Field(description="Article title")
    emoji: str = Field(description="A single emoji representing the article")
    type: ArticleType
    topics: list[str] = Field(max_length=5, description="Lowercase topic tags")
    content: str = Field(description="Article body in Markdown")
    metadata: LLMArticleStats
