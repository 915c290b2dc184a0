"""Prompt templates for the three content kinds.

Pure string formatting: nothing here performs I/O or raises.
"""
from backend.ai import ContentKind

# --- Static Prompt Component Blocks ---
NOTES_STRUCTURE = """
<Structure>
# {topic} - Study Notes

## 1. Introduction & Overview
## 2. Key Concepts & Definitions
## 3. Detailed Explanations
## 4. Examples & Applications
## 5. Important Formulas/Principles
## 6. Common Misconceptions
## 7. Practice Tips
## 8. Summary & Key Takeaways
</Structure>
"""

SLIDE_FORMAT = """
<SlideFormat>
Separate every slide with a line containing only `---`. Format each slide as:
---
# Slide X: Title
## Subtitle (if needed)
- Key point 1
- Key point 2
- Key point 3
Speaker notes: one or two sentences for the presenter
---
</SlideFormat>
"""

MCQ_OUTPUT_FORMAT = """
<OutputFormat>
Return ONLY valid JSON, no code fences and no commentary, in exactly this shape:
{{
  "questions": [
    {{
      "id": 1,
      "question": "Question text?",
      "options": {{"A": "...", "B": "...", "C": "...", "D": "..."}},
      "correct_answer": "A",
      "explanation": "Why A is correct and the others are wrong."
    }}
  ]
}}
</OutputFormat>
"""
# --- End Static Blocks ---


def _difficulty(value) -> str:
    return getattr(value, "value", value)


def _custom(custom_instructions: str = None) -> str:
    if not custom_instructions or not custom_instructions.strip():
        return ""
    return f"<AdditionalInstructions>{custom_instructions.strip()}</AdditionalInstructions>"


def build_notes_prompt(topic: str, subject: str, difficulty="intermediate", custom_instructions: str = None) -> str:
    difficulty = _difficulty(difficulty)
    parts = [
        f"You are an expert {subject} professor. Create comprehensive study notes for \"{topic}\".",
        f"<DifficultyLevel>{difficulty}</DifficultyLevel>",
        f"<Subject>{subject}</Subject>",
        _custom(custom_instructions),
        "Structure your notes with:",
        NOTES_STRUCTURE.format(topic=topic),
        f"Use markdown formatting. Include practical examples and make it engaging for {difficulty} level students.",
    ]
    return "\n".join(part for part in parts if part)


def build_slides_prompt(topic: str, subject: str, difficulty="intermediate", slide_count: int = 12, custom_instructions: str = None) -> str:
    difficulty = _difficulty(difficulty)
    parts = [
        f"Create a {slide_count}-slide presentation for \"{topic}\" in {subject}.",
        f"<DifficultyLevel>{difficulty}</DifficultyLevel>",
        f"<TargetAudience>{difficulty} level students</TargetAudience>",
        _custom(custom_instructions),
        SLIDE_FORMAT,
        "Include:",
        "- Title slide",
        "- Overview/Agenda",
        f"- {max(slide_count - 3, 1)} content slides",
        "- Conclusion slide",
        f"Keep each slide focused with 3-5 bullet points. Use examples and analogies appropriate for {difficulty} level.",
    ]
    return "\n".join(part for part in parts if part)


def build_mcq_prompt(topic: str, subject: str, difficulty="intermediate", count: int = 10, custom_instructions: str = None) -> str:
    difficulty = _difficulty(difficulty)
    parts = [
        f"Generate {count} high-quality multiple choice questions for \"{topic}\" in {subject}.",
        f"<DifficultyLevel>{difficulty}</DifficultyLevel>",
        f"<QuestionCount>{count}</QuestionCount>",
        _custom(custom_instructions),
        "<Requirements>",
        "- Test conceptual understanding, not just memorization",
        "- Include application-based questions",
        "- Provide exactly four options labelled A, B, C and D",
        "- Provide detailed explanations",
        "- Ensure distractors are plausible",
        "</Requirements>",
        MCQ_OUTPUT_FORMAT.format(),
    ]
    return "\n".join(part for part in parts if part)


def build_prompt(kind: ContentKind, request) -> str:
    """Build the prompt for one concrete kind from a GenerationRequest."""
    if kind is ContentKind.NOTES:
        return build_notes_prompt(request.topic, request.subject, request.difficulty, request.custom_instructions)
    if kind is ContentKind.SLIDES:
        return build_slides_prompt(request.topic, request.subject, request.difficulty, request.slide_count, request.custom_instructions)
    if kind is ContentKind.MCQS:
        return build_mcq_prompt(request.topic, request.subject, request.difficulty, request.mcq_count, request.custom_instructions)
    raise ValueError(f"build_prompt needs a concrete content kind, got {kind!r}")
