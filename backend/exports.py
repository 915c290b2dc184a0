import asyncio
import json
import logging
import os
import re
import tempfile
from enum import Enum
from io import BytesIO
from pathlib import Path
from typing import List, Optional

from fastapi import Request
from playwright.async_api import async_playwright
from pptx import Presentation
from pptx.dml.color import RGBColor
from pptx.util import Inches, Pt
from pydantic import BaseModel

from backend.ai import ContentKind
from backend.database import ContentRecord
from backend.errors import ExportError, NotFoundError, RenderTimeoutError, ValidationError
from backend.utils import html_document, questions_to_markdown, sanitize_filename, write_atomic

EXPORTS_DIR = Path(os.getenv("EXPORTS_DIR", "./exports"))
PDF_TIMEOUT_SECONDS = float(os.getenv("PDF_TIMEOUT_SECONDS", "60"))
DOWNLOAD_PREFIX = "/exports"

logger = logging.getLogger("exports")


#######################
# MODELS
#######################


class ExportFormat(str, Enum):
    MARKDOWN = "markdown"
    HTML = "html"
    PDF = "pdf"
    JSON = "json"
    SLIDES_DECK = "pptx"

    @classmethod
    def _missing_(cls, value):
        aliases = {"md": cls.MARKDOWN, "slides": cls.SLIDES_DECK, "slidesdeck": cls.SLIDES_DECK}
        if isinstance(value, str):
            return aliases.get(value.lower())
        return None

    @property
    def extension(self) -> str:
        return {
            ExportFormat.MARKDOWN: ".md",
            ExportFormat.HTML: ".html",
            ExportFormat.PDF: ".pdf",
            ExportFormat.JSON: ".json",
            ExportFormat.SLIDES_DECK: ".pptx",
        }[self]


class ExportArtifact(BaseModel):
    format: ExportFormat
    filename: str
    file_path: str
    download_url: str


class Slide(BaseModel):
    title: str
    bullets: List[str] = []
    notes: Optional[str] = None


#######################
# SLIDE PARSING
#######################

_DELIMITER_RE = re.compile(r"^\s*-{3,}\s*$", re.MULTILINE)
_HEADING_RE = re.compile(r"^#+\s*")
_SLIDE_NUMBER_RE = re.compile(r"^slide\s+\d+\s*[:.\-]\s*", re.IGNORECASE)
_BULLET_RE = re.compile(r"^(?:[-*+]|\d+[.)])\s+")
_NOTES_RE = re.compile(r"^(?:\*\*|__)?(?:speaker\s+)?notes\s*:\s*(?:\*\*|__)?\s*", re.IGNORECASE)


def parse_slides(markdown: str) -> List[Slide]:
    """Split slide markdown on `---` lines into Slides.

    The first non-empty line of a block (heading markers and a "Slide N:" prefix
    removed) is the title, the remaining non-empty lines are bullets. Lines that
    start with "Notes:" or "Speaker notes:" become the slide's notes. Empty
    blocks are dropped.
    """
    slides = []
    for block in _DELIMITER_RE.split(markdown or ""):
        lines = [line.strip() for line in block.splitlines() if line.strip()]
        if not lines:
            continue
        title = _SLIDE_NUMBER_RE.sub("", _HEADING_RE.sub("", lines[0])).strip()
        bullets, notes = [], []
        for line in lines[1:]:
            if _NOTES_RE.match(line):
                notes.append(_NOTES_RE.sub("", line).strip())
                continue
            line = _BULLET_RE.sub("", _HEADING_RE.sub("", line)).strip()
            if line:
                bullets.append(line)
        slides.append(Slide(title=title, bullets=bullets, notes=" ".join(n for n in notes if n) or None))
    return slides


def slides_to_markdown(slides: List[Slide], level: int = 2) -> str:
    """Render parsed slides as plain markdown sections for document exports."""
    hashes = "#" * level
    blocks = []
    for slide in slides:
        lines = [f"{hashes} {slide.title}"]
        if slide.bullets:
            lines.append("")
            lines.extend(f"- {bullet}" for bullet in slide.bullets)
        if slide.notes:
            lines.append("")
            lines.append(f"_Speaker notes: {slide.notes}_")
        blocks.append("\n".join(lines))
    return "\n\n".join(blocks)


def slides_to_pptx_bytes(slides: List[Slide]) -> BytesIO:
    """Lay out one blank-layout slide per Slide with fixed title and body boxes."""
    prs = Presentation()
    prs.slide_width = Inches(10)
    prs.slide_height = Inches(7.5)
    blank_layout = prs.slide_layouts[6]

    for slide_data in slides:
        slide = prs.slides.add_slide(blank_layout)

        title_box = slide.shapes.add_textbox(Inches(0.5), Inches(0.5), Inches(9), Inches(1))
        title_frame = title_box.text_frame
        title_frame.word_wrap = True
        title_run = title_frame.paragraphs[0].add_run()
        title_run.text = slide_data.title
        title_run.font.size = Pt(24)
        title_run.font.bold = True
        title_run.font.color.rgb = RGBColor(0x2C, 0x3E, 0x50)

        if slide_data.bullets:
            body_box = slide.shapes.add_textbox(Inches(0.5), Inches(2), Inches(9), Inches(5))
            body_frame = body_box.text_frame
            body_frame.word_wrap = True
            for i, bullet in enumerate(slide_data.bullets):
                p = body_frame.paragraphs[0] if i == 0 else body_frame.add_paragraph()
                run = p.add_run()
                run.text = f"• {bullet}"
                run.font.size = Pt(16)
                run.font.color.rgb = RGBColor(0x34, 0x49, 0x5E)

        if slide_data.notes:
            slide.notes_slide.notes_text_frame.text = slide_data.notes

    buffer = BytesIO()
    prs.save(buffer)
    buffer.seek(0)
    return buffer


def coerce_format(fmt) -> ExportFormat:
    try:
        return ExportFormat(fmt)
    except ValueError:
        valid = ", ".join(f.value for f in ExportFormat)
        raise ValidationError(f"Unsupported export format '{fmt}'. Expected one of: {valid}")


#######################
# RENDERER
#######################


class ExportRenderer:
    """
    Renders content into files under a fixed exports directory.

    Args:
        exports_dir (Path, optional): Where artifacts are written. Defaults to EXPORTS_DIR.
        pdf_timeout (float, optional): Seconds allowed for one PDF render. Defaults to PDF_TIMEOUT_SECONDS.
    """

    def __init__(self, exports_dir: Path = None, pdf_timeout: float = None):
        self.exports_dir = Path(exports_dir or EXPORTS_DIR).resolve()
        self.pdf_timeout = pdf_timeout or PDF_TIMEOUT_SECONDS

    def init(self):
        self.exports_dir.mkdir(parents=True, exist_ok=True)

    def target_path(self, filename: str, fmt: ExportFormat) -> Path:
        safe_name = sanitize_filename(filename)
        path = (self.exports_dir / f"{safe_name}{fmt.extension}").resolve()
        if path.parent != self.exports_dir:
            raise ExportError(f"Refusing to write outside the exports directory: {safe_name}")
        return path

    def download_url(self, path: Path) -> str:
        return f"{DOWNLOAD_PREFIX}/{path.name}"

    def resolve_download(self, filename: str) -> Path:
        """Map a requested download name to an existing file inside the exports directory."""
        stem, dot, ext = filename.rpartition(".")
        if not dot or sanitize_filename(stem) != stem or not ext.isalnum():
            raise NotFoundError("File not found")
        path = (self.exports_dir / filename).resolve()
        if path.parent != self.exports_dir or not path.is_file():
            raise NotFoundError("File not found")
        return path

    # --- individual formats ---

    async def _write(self, path: Path, data) -> Path:
        return await asyncio.to_thread(write_atomic, path, data)

    async def render_markdown(self, content: str, path: Path) -> Path:
        return await self._write(path, content)

    async def render_html(self, content: str, path: Path) -> Path:
        document = await asyncio.to_thread(html_document, content, path.stem)
        return await self._write(path, document)

    async def _print_pdf(self, document: str, output: Path):
        async with async_playwright() as p:
            browser = await p.chromium.launch(headless=True)
            try:
                page = await browser.new_page()
                await page.set_content(document)
                await page.pdf(
                    path=str(output),
                    format="A4",
                    margin={"top": "20mm", "bottom": "20mm", "left": "20mm", "right": "20mm"},
                )
            finally:
                await browser.close()

    async def render_pdf(self, content: str, path: Path) -> Path:
        document = await asyncio.to_thread(html_document, content, path.stem)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.stem}-", suffix=".part")
        os.close(fd)
        try:
            await asyncio.wait_for(self._print_pdf(document, Path(tmp_name)), timeout=self.pdf_timeout)
            os.replace(tmp_name, path)
        except asyncio.TimeoutError:
            logger.error(f"[render_pdf] Rendering {path.name} exceeded {self.pdf_timeout}s.")
            raise RenderTimeoutError(f"PDF rendering timed out after {self.pdf_timeout:g}s")
        finally:
            if os.path.exists(tmp_name):
                os.remove(tmp_name)
        return path

    async def render_pptx(self, content: str, path: Path) -> Path:
        slides = parse_slides(content)
        if not slides:
            raise ValidationError("No slides found in the slide markdown")
        buffer = await asyncio.to_thread(slides_to_pptx_bytes, slides)
        return await self._write(path, buffer.getvalue())

    async def render_json(self, content: str, path: Path) -> Path:
        try:
            data = json.loads(content)
        except json.JSONDecodeError as e:
            raise ExportError(f"JSON export needs valid JSON content: {e}")
        return await self._write(path, json.dumps(data, indent=2, ensure_ascii=False))

    # --- entry points ---

    async def export_content(self, content: str, fmt: ExportFormat, filename: str) -> ExportArtifact:
        """Render a raw content string into `fmt` and return where it landed."""
        func_name = "export_content"
        fmt = coerce_format(fmt)
        path = self.target_path(filename, fmt)
        renderers = {
            ExportFormat.MARKDOWN: self.render_markdown,
            ExportFormat.HTML: self.render_html,
            ExportFormat.PDF: self.render_pdf,
            ExportFormat.JSON: self.render_json,
            ExportFormat.SLIDES_DECK: self.render_pptx,
        }
        logger.info(f"[{func_name}] Exporting {len(content)} chars to {path.name}")
        try:
            await renderers[fmt](content, path)
        except (ExportError, ValidationError):
            raise
        except Exception as e:
            logger.exception(f"[{func_name}] Export to {path.name} failed: {e}")
            raise ExportError(f"Failed to export {fmt.value}: {e}")
        return ExportArtifact(
            format=fmt,
            filename=path.name,
            file_path=str(path),
            download_url=self.download_url(path),
        )

    async def export_record(
        self,
        record: ContentRecord,
        fmt: ExportFormat,
        filename: str = None,
        kind: ContentKind = None,
    ) -> ExportArtifact:
        """Render a stored record. `kind` narrows the export to notes, slides or mcqs."""
        fmt = coerce_format(fmt)
        filename = filename or f"{record.topic}_{record.id[:8]}"
        content = record_content(record, fmt, kind)
        return await self.export_content(content, fmt, filename)


def record_content(record: ContentRecord, fmt: ExportFormat, kind: ContentKind = None) -> str:
    """The text a record contributes to an export of format `fmt`."""
    if kind is not None and kind is not ContentKind.ALL:
        present = {
            ContentKind.NOTES: record.notes is not None,
            ContentKind.SLIDES: record.slides is not None,
            ContentKind.MCQS: record.mcqs is not None,
        }
        if not present[kind]:
            raise ValidationError(f"Record {record.id} has no {kind.value}")

    if fmt is ExportFormat.JSON:
        if kind is None or kind is ContentKind.ALL:
            return record.model_dump_json(indent=2)
        if kind is ContentKind.MCQS:
            return record.mcqs.model_dump_json(indent=2)
        return json.dumps({kind.value: getattr(record, kind.value)})

    if fmt is ExportFormat.SLIDES_DECK:
        if kind not in (None, ContentKind.ALL, ContentKind.SLIDES) or not record.slides:
            raise ValidationError("Slide deck export needs a record with slides")
        return record.slides

    wanted = [kind] if kind not in (None, ContentKind.ALL) else [ContentKind.NOTES, ContentKind.SLIDES, ContentKind.MCQS]
    sections = []
    if ContentKind.NOTES in wanted and record.notes:
        sections.append(record.notes.strip())
    slides = parse_slides(record.slides) if ContentKind.SLIDES in wanted else []
    if slides:
        if len(wanted) == 1:
            sections.append(slides_to_markdown(slides, level=1))
        else:
            sections.append("# Slides\n\n" + slides_to_markdown(slides))
    if ContentKind.MCQS in wanted and record.mcqs is not None:
        sections.append("# Multiple Choice Questions\n\n" + questions_to_markdown(record.mcqs).strip())
    if not sections:
        raise ValidationError(f"Record {record.id} has no content to export")
    if len(wanted) == 1:
        return sections[0] + "\n"
    title = f"# {record.topic}\n\n_{record.subject} · {record.difficulty.value}_"
    return "\n\n".join([title] + sections) + "\n"


def get_renderer(request: Request) -> ExportRenderer:
    return request.app.state.renderer
