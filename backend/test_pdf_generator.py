"""Tests for cover letter layout, rendering paths and export state handling."""
from datetime import date
from pathlib import Path

import pytest

from letter_studio import pdf_generator
from letter_studio.pdf_generator import (
    Err,
    ExportState,
    ExportedDocument,
    Ok,
    PdfExport,
    Retry,
    compose_letter,
    export_filename,
    generate_cover_letter_html,
    render_fallback,
    render_target,
    save_pdf,
)
from letter_studio.schemas import LetterContent, LetterHeader, LetterRecipient, UserProfile

TODAY = date(2026, 10, 19)
PROFILE = UserProfile(name="Jordan Smith", email="jordan@example.com", location="Austin, TX")


def make_letter(**overrides) -> LetterContent:
    data = {
        "header": LetterHeader(fullName="Jordan Smith", email="jordan@example.com", date="October 19, 2026"),
        "recipient": LetterRecipient(name="Dana Lee", company="Acme Corp", position="Engineering Manager"),
        "body": "I am excited to apply.\nI have shipped payment APIs.\n---\nThis cover letter aligns your experience.",
        "closing": "Best regards,",
    }
    data.update(overrides)
    return LetterContent(**data)


@pytest.fixture
def primary_fails(monkeypatch):
    def _boom(markup, base_url):
        raise OSError("cannot load library 'libpango-1.0-0'")

    monkeypatch.setattr(pdf_generator, "_html_to_pdf", _boom)


@pytest.fixture
def primary_succeeds(monkeypatch):
    calls = []

    def _fake(markup, base_url):
        calls.append((markup, base_url))
        return b"%PDF-1.7 primary"

    monkeypatch.setattr(pdf_generator, "_html_to_pdf", _fake)
    return calls


class TestComposeLetter:
    def test_uses_structured_fields(self):
        layout = compose_letter(make_letter(), PROFILE, TODAY)

        assert layout.signature_name == "Jordan Smith"
        assert layout.date == "October 19, 2026"
        assert layout.contact_line == "jordan@example.com"
        assert layout.recipient_lines == ["Dana Lee", "Engineering Manager", "Acme Corp"]
        assert layout.greeting == "Dear Dana Lee,"
        assert layout.paragraphs == ["I am excited to apply.", "I have shipped payment APIs."]
        assert layout.closing == "Best regards,"

    def test_empty_letter_gets_defaults(self):
        layout = compose_letter(LetterContent(closing=None), None, TODAY)

        assert layout.signature_name == "[Your Name]"
        assert layout.date == "October 19, 2026"
        assert layout.contact_line == ""
        assert layout.recipient_lines == ["Hiring Manager", "Company Name"]
        assert layout.greeting == "Dear Hiring Manager,"
        assert layout.paragraphs == ["No content available."]
        assert layout.closing == "Sincerely,"

    def test_body_placeholders_are_resolved(self):
        layout = compose_letter(make_letter(body="Reach me at [Email Address].\nSincerely,\n[Your Name]"), PROFILE, TODAY)
        assert layout.paragraphs == ["Reach me at jordan@example.com.", "Sincerely,", "Jordan Smith"]


def test_export_filename():
    assert export_filename("Backend Engineer at Acme", TODAY) == "Backend_Engineer_at_Acme_2026-10-19.pdf"
    assert export_filename("Letter (Copy)", TODAY) == "Letter_Copy_2026-10-19.pdf"
    assert export_filename("  ", TODAY) == "Cover_Letter_2026-10-19.pdf"


def test_html_escapes_letter_text():
    layout = compose_letter(make_letter(body="Skills: <script>alert(1)</script> & more"), None, TODAY)
    markup = generate_cover_letter_html(layout)

    assert "<script>" not in markup
    assert "&lt;script&gt;" in markup
    assert "size: letter" in markup
    assert "margin: 1in" in markup


def test_render_target_is_removed_after_failure():
    with pytest.raises(RuntimeError):
        with render_target() as target:
            kept = target
            (target / "letter.html").write_text("x")
            raise RuntimeError("render crashed")
    assert not kept.exists()


def test_fallback_renders_a_pdf_for_an_empty_letter():
    layout = compose_letter(LetterContent(), None, TODAY)
    outcome = render_fallback(layout)

    assert isinstance(outcome, Ok)
    assert outcome.artifact.startswith(b"%PDF")


def test_fallback_draws_long_bodies_on_one_page(caplog):
    body = "\n".join(["A long paragraph about distributed systems and teamwork. " * 6] * 12)
    outcome = render_fallback(compose_letter(make_letter(body=body), None, TODAY))

    assert isinstance(outcome, Ok)
    assert b"/Count 1 " in outcome.artifact
    assert "overflows the page" in caplog.text


class TestPdfExport:
    def test_primary_success(self, primary_succeeds):
        notifications = []
        export = PdfExport("Backend Engineer at Acme", make_letter(), PROFILE, notifications.append, TODAY)

        outcome = export.run()

        assert isinstance(outcome, Ok)
        assert outcome.artifact.render_path == "primary"
        assert outcome.artifact.filename == "Backend_Engineer_at_Acme_2026-10-19.pdf"
        assert export.history == [ExportState.IDLE, ExportState.RENDERING_PRIMARY, ExportState.SAVED]
        assert [n.title for n in notifications] == ["PDF Downloaded"]
        assert len(primary_succeeds) == 1

    def test_primary_failure_falls_back_once(self, primary_fails, monkeypatch):
        fallback_calls = []
        real_fallback = pdf_generator.render_fallback

        def counting_fallback(layout):
            fallback_calls.append(layout)
            return real_fallback(layout)

        monkeypatch.setattr(pdf_generator, "render_fallback", counting_fallback)
        notifications = []
        export = PdfExport("Backend Engineer at Acme", make_letter(), PROFILE, notifications.append, TODAY)

        outcome = export.run()

        assert isinstance(outcome, Ok)
        assert outcome.artifact.render_path == "fallback"
        assert outcome.artifact.content.startswith(b"%PDF")
        assert len(fallback_calls) == 1
        assert [n.title for n in notifications] == ["PDF Downloaded"]
        assert export.history == [
            ExportState.IDLE,
            ExportState.RENDERING_PRIMARY,
            ExportState.RENDERING_FALLBACK,
            ExportState.SAVED,
        ]

    def test_both_paths_failing_reports_one_error(self, primary_fails, monkeypatch):
        monkeypatch.setattr(pdf_generator, "render_fallback", lambda layout: Err("canvas exploded"))
        notifications = []
        export = PdfExport("Letter", make_letter(), None, notifications.append, TODAY)

        outcome = export.run()

        assert outcome == Err("canvas exploded")
        assert export.state is ExportState.ERROR
        assert export.document is None
        assert len(notifications) == 1
        assert notifications[0].variant == "destructive"

    def test_empty_primary_output_is_retried(self, monkeypatch):
        monkeypatch.setattr(pdf_generator, "_html_to_pdf", lambda markup, base_url: b"")
        export = PdfExport("Letter", LetterContent(), today=TODAY)

        outcome = export.run()

        assert isinstance(outcome, Ok)
        assert outcome.artifact.render_path == "fallback"

    def test_staging_write_failure_falls_back(self, primary_succeeds, monkeypatch):
        def disk_full(self, *args, **kwargs):
            raise OSError("No space left on device")

        monkeypatch.setattr(Path, "write_text", disk_full)
        notifications = []
        export = PdfExport("Letter", LetterContent(), None, notifications.append, TODAY)

        outcome = export.run()

        assert isinstance(outcome, Ok)
        assert outcome.artifact.render_path == "fallback"
        assert export.history == [
            ExportState.IDLE,
            ExportState.RENDERING_PRIMARY,
            ExportState.RENDERING_FALLBACK,
            ExportState.SAVED,
        ]
        assert [n.title for n in notifications] == ["PDF Downloaded"]
        assert primary_succeeds == []

    def test_primary_renderer_returns_retry(self, primary_fails, tmp_path):
        layout = compose_letter(make_letter(), None, TODAY)
        outcome = pdf_generator.render_primary(layout, tmp_path)
        assert isinstance(outcome, Retry)
        assert "libpango" in outcome.reason

    def test_export_runs_only_once(self, primary_succeeds):
        export = PdfExport("Letter", make_letter(), today=TODAY)
        export.run()
        with pytest.raises(RuntimeError):
            export.run()


def test_html_engine_renders_a_real_pdf(tmp_path):
    try:
        pytest.importorskip("weasyprint")
    except OSError as e:
        pytest.skip(f"WeasyPrint system libraries are missing: {e}")

    layout = compose_letter(make_letter(), PROFILE, TODAY)
    outcome = pdf_generator.render_primary(layout, tmp_path)

    assert isinstance(outcome, Ok)
    assert outcome.artifact.startswith(b"%PDF")
    assert (tmp_path / "letter.html").read_text(encoding="utf-8") == generate_cover_letter_html(layout)


def test_save_pdf_writes_atomically(tmp_path):
    document = ExportedDocument(filename="Letter_2026-10-19.pdf", content=b"%PDF-1.4 data", render_path="fallback")

    path = save_pdf(document, tmp_path / "exports")

    assert path == tmp_path / "exports" / "Letter_2026-10-19.pdf"
    assert path.read_bytes() == b"%PDF-1.4 data"
    assert [p.name for p in path.parent.iterdir()] == ["Letter_2026-10-19.pdf"]


def test_save_pdf_leaves_no_partial_file(tmp_path, monkeypatch):
    def failing_replace(src, dst):
        raise OSError("disk full")

    monkeypatch.setattr(pdf_generator.os, "replace", failing_replace)
    document = ExportedDocument(filename="Letter.pdf", content=b"%PDF", render_path="primary")

    with pytest.raises(OSError):
        save_pdf(document, tmp_path)

    assert list(Path(tmp_path).iterdir()) == []


class TestPdfApi:
    async def test_download_saved_letter(self, client, primary_fails):
        created = await client.post("/api/cover-letters", json={
            "name": "Backend Engineer at Acme",
            "content": {"body": "Hello [Your Name]", "recipient": {"company": "Acme"}},
        })
        letter_id = created.json()["id"]

        response = await client.get(f"/api/cover-letters/{letter_id}/pdf")

        assert response.status_code == 200
        assert response.headers["content-type"] == "application/pdf"
        assert response.headers["x-render-path"] == "fallback"
        assert "Backend_Engineer_at_Acme_" in response.headers["content-disposition"]
        assert response.content.startswith(b"%PDF")

    async def test_generate_unsaved_letter(self, client, primary_succeeds):
        response = await client.post("/api/pdf/generate", json={"name": "Draft", "content": {}})

        assert response.status_code == 200
        assert response.headers["x-render-path"] == "primary"
        assert response.content == b"%PDF-1.7 primary"

    async def test_export_failure_returns_500(self, client, primary_fails, monkeypatch):
        monkeypatch.setattr(pdf_generator, "render_fallback", lambda layout: Err("canvas exploded"))

        response = await client.post("/api/pdf/generate", json={"name": "Draft"})

        assert response.status_code == 500
        assert response.json()["detail"] == "All PDF generation methods failed. Please try again later."

    async def test_preview_resolves_placeholders(self, client):
        created = await client.post("/api/cover-letters", json={
            "name": "Preview",
            "content": {"body": "Sincerely,\n[Your Name]"},
        })
        response = await client.get(f"/api/pdf/preview/{created.json()['id']}")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/html")
        assert "<p>Jordan Smith</p>" in response.text

    async def test_missing_letter_is_404(self, client):
        response = await client.get("/api/cover-letters/999/pdf")
        assert response.status_code == 404
