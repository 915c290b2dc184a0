import pytest

from backend.ai import ContentKind, Difficulty
from backend.generation import GenerationRequest
from backend.prompts import build_mcq_prompt, build_notes_prompt, build_prompt, build_slides_prompt


def make_request(**overrides):
    data = {
        "topic": "Photosynthesis",
        "subject": "Biology",
        "difficulty": "beginner",
        "content_kind": "all",
    }
    data.update(overrides)
    return GenerationRequest(**data)


def test_notes_prompt_embeds_request_fields():
    prompt = build_notes_prompt("Photosynthesis", "Biology", Difficulty.ADVANCED, "Focus on C4 plants")
    assert "Photosynthesis" in prompt
    assert "expert Biology professor" in prompt
    assert "<DifficultyLevel>advanced</DifficultyLevel>" in prompt
    assert "Focus on C4 plants" in prompt
    assert "# Photosynthesis - Study Notes" in prompt


def test_custom_instructions_omitted_when_blank():
    prompt = build_notes_prompt("Photosynthesis", "Biology", "beginner", "   ")
    assert "AdditionalInstructions" not in prompt


def test_slides_prompt_counts():
    prompt = build_slides_prompt("Photosynthesis", "Biology", "intermediate", slide_count=8)
    assert "8-slide presentation" in prompt
    assert "5 content slides" in prompt
    assert "---" in prompt


def test_mcq_prompt_requests_json_shape():
    prompt = build_mcq_prompt("Photosynthesis", "Biology", "intermediate", count=15)
    assert "Generate 15" in prompt
    for field in ('"questions"', '"options"', '"correct_answer"', '"explanation"'):
        assert field in prompt


def test_prompts_are_deterministic():
    request = make_request(custom_instructions="Use analogies")
    for kind in ContentKind.ALL.expand():
        assert build_prompt(kind, request) == build_prompt(kind, request)


def test_build_prompt_dispatch():
    request = make_request(mcq_count=7, slide_count=6)
    assert "Generate 7" in build_prompt(ContentKind.MCQS, request)
    assert "6-slide presentation" in build_prompt(ContentKind.SLIDES, request)
    assert "study notes" in build_prompt(ContentKind.NOTES, request)


def test_build_prompt_needs_concrete_kind():
    with pytest.raises(ValueError):
        build_prompt(ContentKind.ALL, make_request())
