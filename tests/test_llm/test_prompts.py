"""Prompt builder tests."""

from conftest import make_analysis
from knowledge_pipeline.llm.prompts import (
    GENERATION_SYSTEM_PROMPT,
    build_analysis_content,
    build_generation_content,
)
from knowledge_pipeline.models.knowledge import GenerationOptions, GenerationStyle


def test_analysis_content_includes_title_and_body():
    content = build_analysis_content("Widgets are small.", "Widgets")
    assert content == "Title: Widgets\n\n---\nWidgets are small."


def test_analysis_content_without_title():
    assert build_analysis_content("Body", None).startswith("Title: Untitled")


def test_generation_content_defaults_to_estimated_length():
    """Without a target length the analysis estimate is used."""
    content = build_generation_content("Body", make_analysis(), GenerationOptions())

    assert "Target length: 3000 characters" in content
    assert "Outline: Overview -> Assembly -> Testing" in content
    assert "Style: casual" in content
    assert content.endswith("---\nBody")


def test_generation_content_respects_options():
    options = GenerationOptions(style=GenerationStyle.TECHNICAL, target_length=800)
    content = build_generation_content("Body", make_analysis(), options)

    assert "Style: technical" in content
    assert "Target length: 800 characters" in content


def test_generation_prompt_limits_topics():
    assert "at most five" in GENERATION_SYSTEM_PROMPT
