"""Prompt builders for the analysis and generation calls."""

from knowledge_pipeline.models.knowledge import ContentAnalysis, GenerationOptions

ANALYSIS_SYSTEM_PROMPT = """\
You analyze knowledge notes so they can be turned into technical articles for Zenn.
Read the whole note. Never invent facts that are not in it.
Return a short summary, the key topics, a suggested article title, an estimated \
article length in characters, the difficulty level, the target audience and a \
recommended section outline.
"""

GENERATION_SYSTEM_PROMPT = """\
You write technical articles for Zenn from a knowledge note and its analysis.
Structure: introduction (the problem and the article's goal), body (explanation \
and worked examples), summary (key points and next steps).
Use Markdown headings, fenced code blocks with a language, and keep the tone \
practical. Topics are lowercase tags, at most five. The emoji is a single character.
"""


def build_analysis_content(content: str, title: str | None) -> str:
    return f"Title: {title or 'Untitled'}\n\n---\n{content}"


def build_generation_content(
    content: str, analysis: ContentAnalysis, options: GenerationOptions
) -> str:
    target_length = options.target_length or analysis.estimated_article_length
    lines = [
        f"Summary: {analysis.summary}",
        f"Key topics: {', '.join(analysis.key_topics)}",
        f"Suggested title: {analysis.suggested_title}",
        f"Difficulty: {analysis.difficulty_level.value}",
        f"Target audience: {analysis.target_audience}",
        f"Outline: {' -> '.join(analysis.recommended_structure)}",
        f"Style: {options.style.value}",
        f"Target length: {target_length} characters",
        f"Include code examples: {'yes' if options.include_code_examples else 'no'}",
        f"\n---\n{content}",
    ]
    return "\n".join(lines)
