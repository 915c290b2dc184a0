import html
import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Union

import pypandoc

from backend.ai import QuestionSet

logger = logging.getLogger("utils")

# File utilities
UNSAFE_CHARS = r"[^A-Za-z0-9_-]"


def sanitize_filename(text: str, max_len: int = 100) -> str:
    """
    Sanitize a filename so it can be used as a single path segment.

    Every character outside letters, digits, underscore and hyphen is replaced
    with an underscore, so separators and dots never survive.

    Args:
        text: The raw text to sanitize
        max_len: Maximum allowed filename length

    Returns:
        Sanitized filename string, "export" when nothing usable is left
    """
    text = (text or "").strip()
    text = re.sub(UNSAFE_CHARS, "_", text)
    text = text[:max_len]
    return text if text.strip("_") else "export"


def write_atomic(path: Path, data: Union[str, bytes]) -> Path:
    """
    Write *data* to a temporary file next to *path* and move it into place.

    The final path only ever holds a complete file; on any error the temporary
    file is removed and the exception re-raised.
    """
    mode = "wb" if isinstance(data, bytes) else "w"
    encoding = None if isinstance(data, bytes) else "utf-8"
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.stem}-", suffix=".part")
    try:
        with os.fdopen(fd, mode, encoding=encoding) as f:
            f.write(data)
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.remove(tmp_name)
        except OSError as rm_err:
            logger.warning(f"Could not remove temporary file {tmp_name}: {rm_err}")
        raise
    return path


#######################
# MARKDOWN -> HTML
#######################

HTML_TEMPLATE = """<!DOCTYPE html>
<html>
<head>
    <meta charset="UTF-8">
    <title>{title}</title>
    <style>
        body {{ font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif; max-width: 800px; margin: 0 auto; padding: 20px; line-height: 1.6; }}
        h1, h2, h3 {{ color: #2c3e50; }}
        code {{ background: #f4f4f4; padding: 2px 4px; border-radius: 3px; }}
        pre {{ background: #f4f4f4; padding: 15px; border-radius: 5px; overflow-x: auto; }}
        blockquote {{ border-left: 4px solid #3498db; margin: 0; padding-left: 20px; color: #7f8c8d; }}
    </style>
</head>
<body>
{body}
</body>
</html>
"""


def markdown_to_html(markdown: str) -> str:
    """Convert a markdown string to an HTML fragment with pandoc."""
    return pypandoc.convert_text(markdown, to="html", format="markdown")


def html_document(markdown: str, title: str) -> str:
    """Render markdown into the standalone export HTML document."""
    return HTML_TEMPLATE.format(title=html.escape(title), body=markdown_to_html(markdown))


#######################
# MCQ -> MARKDOWN
#######################


def questions_to_markdown(question_set: QuestionSet) -> str:
    """Render a QuestionSet as readable markdown for document exports."""
    if question_set.parse_error and not question_set.questions:
        return "_The multiple choice questions could not be parsed._\n\n" + "```\n" + (question_set.raw_response or "") + "\n```\n"

    blocks = []
    for question in question_set.questions:
        lines = [f"**Question {question.id}:** {question.question}", ""]
        for label, text in question.options.items():
            lines.append(f"- {label}) {text}")
        lines.append("")
        answer = question.correct_answer
        if answer is None:
            answer = "not provided"
        elif not question.has_valid_answer():
            answer = f"{answer} (not one of the listed options)"
        lines.append(f"**Correct Answer:** {answer}")
        if question.explanation:
            lines.append("")
            lines.append(f"**Explanation:** {question.explanation}")
        blocks.append("\n".join(lines))
    return "\n\n".join(blocks) + "\n"
