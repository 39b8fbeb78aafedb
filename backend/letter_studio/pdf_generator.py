import asyncio
import html
import logging
import os
import re
import tempfile
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date
from enum import Enum
from io import BytesIO
from pathlib import Path
from typing import Callable, Iterator, List, Optional, Union

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import Response
from opentelemetry import trace
from reportlab.lib.pagesizes import letter
from reportlab.lib.units import inch
from reportlab.lib.utils import simpleSplit
from reportlab.pdfbase.pdfmetrics import stringWidth
from reportlab.pdfgen import canvas
from sqlalchemy.ext.asyncio import AsyncSession

from letter_studio.db import get_db
from letter_studio.dependencies import get_current_active_user
from letter_studio.models_db import User
from letter_studio.cover_letter_documents import get_owned_letter
from letter_studio.sanitizer import prepare_letter_body
from letter_studio.schemas import LetterContent, UserProfile, PDFGenerationRequest

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)
router = APIRouter()

DEFAULT_NAME = "[Your Name]"
DEFAULT_RECIPIENT = "Hiring Manager"
DEFAULT_COMPANY = "Company Name"
EMPTY_BODY = "No content available."
DATE_FORMAT = "%B %d, %Y"

# Fallback canvas geometry, in points
PAGE_WIDTH, PAGE_HEIGHT = letter
MARGIN = 1 * inch
BODY_FONT = "Times-Roman"
BOLD_FONT = "Times-Bold"
BODY_SIZE = 12
NAME_SIZE = 16
LINE_STEP = 20

PAGE_CSS = """
    @page {
        size: letter;
        margin: 1in;
    }

    body {
        font-family: Georgia, 'Times New Roman', serif;
        font-size: 12pt;
        line-height: 1.6;
        color: #000;
        background: white;
        margin: 0;
    }

    .letter {
        max-width: 6.5in;
        margin: 0 auto;
        text-align: left;
    }

    .header {
        text-align: center;
        margin-bottom: 36px;
    }

    .header h1 {
        font-size: 16pt;
        font-weight: bold;
        margin: 0 0 8px 0;
    }

    .header p {
        margin: 0 0 4px 0;
    }

    .recipient {
        margin-bottom: 24px;
    }

    .recipient p {
        margin: 0 0 4px 0;
    }

    .greeting {
        margin-bottom: 24px;
    }

    .body {
        margin-bottom: 24px;
        text-align: justify;
    }

    .body p {
        margin: 0 0 12px 0;
    }

    .closing {
        margin-top: 36px;
    }

    .closing .sign-off {
        margin-bottom: 24px;
    }
"""


# --- Layout ---

@dataclass
class LetterLayout:
    """Plain-text blocks of a letter in the order they are placed on the page."""
    signature_name: str
    date: str
    contact_line: str
    recipient_lines: List[str]
    greeting: str
    paragraphs: List[str]
    closing: str


def _present(value: Optional[str]) -> Optional[str]:
    value = (value or "").strip()
    return value or None


def compose_letter(content: LetterContent, profile: Optional[UserProfile] = None, today: Optional[date] = None) -> LetterLayout:
    """Extract the printable blocks from a structured letter, applying defaults for empty fields."""
    header = content.header
    recipient = content.recipient
    today = today or date.today()

    contact = [value for value in (_present(header.email), _present(header.phone), _present(header.location)) if value]

    recipient_lines = [
        value for value in (
            _present(recipient.name),
            _present(recipient.position),
            _present(recipient.company),
            _present(recipient.address),
        ) if value
    ]
    if not _present(recipient.name) and not _present(recipient.position):
        recipient_lines.insert(0, DEFAULT_RECIPIENT)
    if not _present(recipient.company):
        recipient_lines.append(DEFAULT_COMPANY)

    body = prepare_letter_body(content.body, profile)
    paragraphs = [para.strip() for para in body.split("\n") if para.strip()]

    return LetterLayout(
        signature_name=_present(header.fullName) or DEFAULT_NAME,
        date=_present(header.date) or today.strftime(DATE_FORMAT),
        contact_line=" | ".join(contact),
        recipient_lines=recipient_lines,
        greeting=f"Dear {_present(recipient.name) or DEFAULT_RECIPIENT},",
        paragraphs=paragraphs or [EMPTY_BODY],
        closing=content.closing_or_default,
    )


def export_filename(name: Optional[str], today: Optional[date] = None) -> str:
    """Derive ``<letter_name>_<YYYY-MM-DD>.pdf`` from the letter's display name."""
    base = re.sub(r"\s+", "_", (name or "").strip())
    base = re.sub(r"[^A-Za-z0-9_\-]", "", base) or "Cover_Letter"
    return f"{base}_{(today or date.today()).isoformat()}.pdf"


# --- Render outcomes ---

@dataclass(frozen=True)
class Ok:
    artifact: object


@dataclass(frozen=True)
class Retry:
    reason: str


@dataclass(frozen=True)
class Err:
    reason: str


RenderOutcome = Union[Ok, Retry, Err]


@contextmanager
def render_target(prefix: str = "letter-export-") -> Iterator[Path]:
    """Private scratch directory for one export; removed on exit whatever happened inside."""
    with tempfile.TemporaryDirectory(prefix=prefix) as workdir:
        yield Path(workdir)


# --- Primary path: HTML engine ---

def generate_cover_letter_html(layout: LetterLayout) -> str:
    """Generate the styled HTML document for a composed letter."""
    esc = html.escape
    contact_html = f"<p>{esc(layout.contact_line)}</p>" if layout.contact_line else ""
    recipient_html = "".join(f"<p>{esc(line)}</p>" for line in layout.recipient_lines)
    body_html = "".join(f"<p>{esc(para)}</p>" for para in layout.paragraphs)

    return f"""<!DOCTYPE html>
<html>
<head>
    <meta charset="UTF-8">
    <title>Cover Letter - {esc(layout.signature_name)}</title>
    <style>{PAGE_CSS}</style>
</head>
<body>
    <div class="letter">
        <div class="header">
            <h1>{esc(layout.signature_name)}</h1>
            {contact_html}
            <p>{esc(layout.date)}</p>
        </div>
        <div class="recipient">{recipient_html}</div>
        <p class="greeting">{esc(layout.greeting)}</p>
        <div class="body">{body_html}</div>
        <div class="closing">
            <p class="sign-off">{esc(layout.closing)}</p>
            <p>{esc(layout.signature_name)}</p>
        </div>
    </div>
</body>
</html>
"""


def _html_to_pdf(markup: str, base_url: str) -> bytes:
    # WeasyPrint needs Pango at import time; a missing system library surfaces as OSError
    from weasyprint import HTML

    return HTML(string=markup, base_url=base_url).write_pdf(
        jpeg_quality=98,
        dpi=192,
        presentational_hints=True,
    )


def render_primary(layout: LetterLayout, target: Path) -> RenderOutcome:
    """Render the letter through the HTML engine inside ``target``."""
    markup = generate_cover_letter_html(layout)
    staged = target / "letter.html"

    try:
        staged.write_text(markup, encoding="utf-8")
        pdf_bytes = _html_to_pdf(markup, base_url=str(target))
    except Exception as e:
        logger.warning(f"HTML renderer failed: {e}")
        return Retry(f"HTML renderer failed: {e}")

    if not pdf_bytes:
        return Retry("HTML renderer returned an empty document")
    return Ok(pdf_bytes)


# --- Fallback path: direct canvas drawing ---

def render_fallback(layout: LetterLayout) -> RenderOutcome:
    """
    Draw the letter on a single page with ReportLab canvas primitives.

    A vertical cursor ``y`` is measured from the top edge and advanced by fixed
    steps per line. Long bodies are not paginated and run off the bottom of
    the page.
    """
    buffer = BytesIO()
    try:
        doc = canvas.Canvas(buffer, pagesize=letter)
        text_width = PAGE_WIDTH - MARGIN * 2
        x = MARGIN
        y = MARGIN

        def draw(text: str, at_x: float, at_y: float) -> None:
            doc.drawString(at_x, PAGE_HEIGHT - at_y, text)

        def draw_centered(text: str, font: str, size: int, at_y: float) -> None:
            width = stringWidth(text, font, size)
            draw(text, (PAGE_WIDTH - width) / 2, at_y)

        # Header
        doc.setFont(BOLD_FONT, NAME_SIZE)
        draw_centered(layout.signature_name, BOLD_FONT, NAME_SIZE, y)
        y += 24

        doc.setFont(BODY_FONT, BODY_SIZE)
        if layout.contact_line:
            draw_centered(layout.contact_line, BODY_FONT, BODY_SIZE, y)
            y += LINE_STEP
        draw_centered(layout.date, BODY_FONT, BODY_SIZE, y)
        y += 40

        # Recipient
        for line in layout.recipient_lines:
            draw(line, x, y)
            y += LINE_STEP
        y += LINE_STEP

        draw(layout.greeting, x, y)
        y += 40

        # Body
        for paragraph in layout.paragraphs:
            for line in simpleSplit(paragraph, BODY_FONT, BODY_SIZE, text_width):
                draw(line, x, y)
                y += LINE_STEP
            y += LINE_STEP

        # Closing
        y += LINE_STEP
        draw(layout.closing, x, y)
        y += 40
        draw(layout.signature_name, x, y)

        if y > PAGE_HEIGHT - MARGIN:
            # TODO: paginate long bodies once a multi-page layout is agreed with product
            logger.warning(f"Fallback PDF content overflows the page by {y - (PAGE_HEIGHT - MARGIN):.0f}pt")

        doc.showPage()
        doc.save()
    except Exception as e:
        logger.error(f"Fallback PDF rendering failed: {e}", exc_info=True)
        return Err(f"Fallback renderer failed: {e}")

    return Ok(buffer.getvalue())


# --- Export orchestration ---

class ExportState(str, Enum):
    IDLE = "idle"
    RENDERING_PRIMARY = "rendering_primary"
    RENDERING_FALLBACK = "rendering_fallback"
    SAVED = "saved"
    ERROR = "error"


@dataclass(frozen=True)
class Notification:
    title: str
    description: str
    variant: str = "default"


@dataclass(frozen=True)
class ExportedDocument:
    filename: str
    content: bytes
    render_path: str


class PdfExport:
    """
    One export of one letter.

    Runs the HTML engine first and switches to the canvas renderer when the
    engine asks for a retry. Terminal states are SAVED and ERROR; an export
    runs once and is never retried automatically.
    """

    def __init__(
        self,
        name: str,
        content: LetterContent,
        profile: Optional[UserProfile] = None,
        notify: Optional[Callable[[Notification], None]] = None,
        today: Optional[date] = None,
    ):
        self.name = name
        self.content = content
        self.profile = profile
        self.notify = notify
        self.today = today or date.today()
        self.state = ExportState.IDLE
        self.history: List[ExportState] = [ExportState.IDLE]
        self.document: Optional[ExportedDocument] = None

    def _transition(self, state: ExportState) -> None:
        logger.debug(f"PDF export '{self.name}': {self.state.value} -> {state.value}")
        self.state = state
        self.history.append(state)

    def _emit(self, notification: Notification) -> None:
        logger.info(f"{notification.title}: {notification.description}")
        if self.notify:
            self.notify(notification)

    def run(self) -> RenderOutcome:
        if self.state is not ExportState.IDLE:
            raise RuntimeError(f"Export already finished in state '{self.state.value}'")

        with tracer.start_as_current_span("cover_letter.pdf_export") as span:
            layout = compose_letter(self.content, self.profile, self.today)
            filename = export_filename(self.name, self.today)
            render_path = "primary"

            self._transition(ExportState.RENDERING_PRIMARY)
            try:
                with render_target() as target:
                    outcome = render_primary(layout, target)
            except OSError as e:
                outcome = Retry(f"Render target unavailable: {e}")

            if isinstance(outcome, Retry):
                logger.warning(f"Primary PDF rendering failed for '{self.name}', using fallback: {outcome.reason}")
                render_path = "fallback"
                self._transition(ExportState.RENDERING_FALLBACK)
                outcome = render_fallback(layout)

            span.set_attribute("pdf.render_path", render_path)

            if isinstance(outcome, Ok):
                self.document = ExportedDocument(filename=filename, content=outcome.artifact, render_path=render_path)
                self._transition(ExportState.SAVED)
                self._emit(Notification(
                    title="PDF Downloaded",
                    description=f'Your cover letter "{self.name}" has been saved as a PDF.',
                ))
                return Ok(self.document)

            reason = outcome.reason
            self._transition(ExportState.ERROR)
            span.set_attribute("pdf.error", reason)
            logger.error(f"All PDF generation methods failed for '{self.name}': {reason}")
            self._emit(Notification(
                title="Error",
                description="All PDF generation methods failed. Please try again later.",
                variant="destructive",
            ))
            return Err(reason)


def export_cover_letter_pdf(
    name: str,
    content: LetterContent,
    profile: Optional[UserProfile] = None,
    notify: Optional[Callable[[Notification], None]] = None,
) -> RenderOutcome:
    """Run a fresh export and return ``Ok(ExportedDocument)`` or ``Err(reason)``."""
    return PdfExport(name, content, profile=profile, notify=notify).run()


def save_pdf(document: ExportedDocument, directory: Union[str, Path]) -> Path:
    """Write an exported document into ``directory`` without ever leaving a partial file behind."""
    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)
    destination = directory / document.filename

    fd, tmp_name = tempfile.mkstemp(dir=directory, suffix=".part")
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(document.content)
        os.replace(tmp_name, destination)
    except Exception:
        Path(tmp_name).unlink(missing_ok=True)
        raise
    return destination


# --- API ---

async def _export_response(name: str, content: LetterContent, user: User) -> Response:
    notifications: List[Notification] = []
    export = PdfExport(name, content, profile=UserProfile.from_user(user), notify=notifications.append)

    outcome = await asyncio.to_thread(export.run)
    if not isinstance(outcome, Ok):
        detail = notifications[-1].description if notifications else "PDF generation failed."
        raise HTTPException(status_code=500, detail=detail)

    document = outcome.artifact
    return Response(
        content=document.content,
        media_type="application/pdf",
        headers={
            "Content-Disposition": f'attachment; filename="{document.filename}"',
            "X-Render-Path": document.render_path,
        },
    )


@router.get("/cover-letters/{letter_id}/pdf")
async def download_cover_letter_pdf(
    letter_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user)
):
    """Export a saved cover letter as a PDF attachment."""
    cover_letter = await get_owned_letter(db, letter_id, current_user)
    content = LetterContent.model_validate(cover_letter.content or {})
    logger.info(f"Exporting cover letter {letter_id} for user {current_user.id}")
    return await _export_response(cover_letter.name, content, current_user)


@router.post("/pdf/generate")
async def generate_pdf(
    request: PDFGenerationRequest,
    current_user: User = Depends(get_current_active_user)
):
    """Export an unsaved letter straight from the editor."""
    return await _export_response(request.name, request.content, current_user)


@router.get("/pdf/preview/{letter_id}")
async def preview_html(
    letter_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user)
):
    """Preview the HTML that the primary renderer turns into a PDF."""
    cover_letter = await get_owned_letter(db, letter_id, current_user)
    content = LetterContent.model_validate(cover_letter.content or {})
    layout = compose_letter(content, UserProfile.from_user(current_user))
    return Response(content=generate_cover_letter_html(layout), media_type="text/html")
