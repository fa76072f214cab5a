from __future__ import annotations

from io import BytesIO
from pathlib import Path
from typing import Dict, List, Optional
import asyncio
import logging
import sys

from jinja2 import Environment, FileSystemLoader, select_autoescape
from docx import Document

from models import CVData

logger = logging.getLogger(__name__)

# ============================================================
# Templates + themes
# ============================================================
CV_TEMPLATES: Dict[str, Dict[str, str]] = {
    "classic": {
        "name": "Classic",
        "description": "Single column, serif headings, ruled sections.",
        "file": "cv_classic.html",
    },
    "modern": {
        "name": "Modern",
        "description": "Coloured sidebar with contacts and skills.",
        "file": "cv_modern.html",
    },
    "minimalist": {
        "name": "Minimalist",
        "description": "Lots of white space, no rules or colour blocks.",
        "file": "cv_minimalist.html",
    },
    "academic": {
        "name": "Academic",
        "description": "Education first, suited to research and teaching roles.",
        "file": "cv_academic.html",
    },
}
DEFAULT_TEMPLATE_ID = "classic"

SANS = "Helvetica, Arial, sans-serif"
SERIF = "Georgia, 'Times New Roman', serif"

DEFAULT_THEME = {
    "primaryColor": "#2563eb",
    "secondaryColor": "#374151",
    "backgroundColor": "#ffffff",
    "textColor": "#111827",
    "fontFamily": SANS,
}

THEMES: Dict[str, Dict[str, str]] = {
    "Default Blue": DEFAULT_THEME,
    "Modern Teal": {**DEFAULT_THEME, "primaryColor": "#0d9488", "secondaryColor": "#334155", "textColor": "#0f172a"},
    "Classic Gray": {
        **DEFAULT_THEME,
        "primaryColor": "#1f2937",
        "secondaryColor": "#4b5563",
        "textColor": "#000000",
        "fontFamily": SERIF,
    },
    "Creative Purple": {
        **DEFAULT_THEME,
        "primaryColor": "#9333ea",
        "secondaryColor": "#ec4899",
        "backgroundColor": "#f9fafb",
        "textColor": "#1f2937",
    },
}

CONTACT_LABELS = {
    "phone": "Phone",
    "email": "Email",
    "linkedin": "LinkedIn",
    "github": "GitHub",
    "portfolio": "Portfolio",
    "address": "Address",
}


def list_templates() -> List[Dict[str, str]]:
    items = [
        {"id": tid, "name": t["name"], "description": t["description"]}
        for tid, t in CV_TEMPLATES.items()
    ]
    return sorted(items, key=lambda t: t["name"])


def resolve_template_id(template_id: Optional[str]) -> str:
    return template_id if template_id in CV_TEMPLATES else DEFAULT_TEMPLATE_ID


# ============================================================
# Jinja setup
# ============================================================
BASE_DIR = Path(__file__).resolve().parent
TEMPLATES_DIR = BASE_DIR / "templates"

env = Environment(
    loader=FileSystemLoader(str(TEMPLATES_DIR)),
    autoescape=select_autoescape(["html", "xml"]),
)


def render_cv_html(cv: CVData, template_id: Optional[str] = None, theme: Optional[Dict[str, str]] = None) -> str:
    template = env.get_template(CV_TEMPLATES[resolve_template_id(template_id)]["file"])
    return template.render(
        cv=cv,
        contacts=[(CONTACT_LABELS[f], v) for f, v in cv.personal_info.visible_contacts()],
        theme={**DEFAULT_THEME, **(theme or {})},
    )


# ============================================================
# PDF (Playwright-only)
# ============================================================
def _prepare_windows_event_loop() -> None:
    if sys.platform.startswith("win"):
        try:
            asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())  # type: ignore[attr-defined]
        except Exception as e:
            logger.warning(f"[PDF] Could not set Windows event loop policy: {e}")


PDF_MARGIN = {"top": "10mm", "bottom": "10mm", "left": "0mm", "right": "0mm"}


def _html_to_pdf(html_str: str) -> bytes:
    """
    Print an HTML page to A4 with headless Chromium.
    Needs `playwright install chromium` once per machine.
    """
    _prepare_windows_event_loop()

    from playwright.sync_api import sync_playwright

    logger.info(f"[PDF] Printing CV ({len(html_str)} chars of HTML)")

    try:
        with sync_playwright() as p:
            browser = p.chromium.launch(headless=True, args=["--no-sandbox", "--disable-dev-shm-usage"])
            try:
                page = browser.new_page()
                # portraits may be remote; wait for them before printing
                page.set_content(html_str, wait_until="networkidle", timeout=30_000)
                page.emulate_media(media="print")
                return page.pdf(format="A4", print_background=True, margin=PDF_MARGIN)
            finally:
                browser.close()
    except Exception as e:
        logger.exception("[PDF] Chromium could not print the CV")
        raise RuntimeError(f"PDF export failed: {e}") from e


def render_cv_pdf_bytes(cv: CVData, template_id: Optional[str] = None, theme: Optional[Dict[str, str]] = None) -> bytes:
    html_str = render_cv_html(cv, template_id=template_id, theme=theme)
    return _html_to_pdf(html_str)


# ============================================================
# DOCX
# ============================================================
def _joined(sep: str, *parts: str) -> str:
    return sep.join(p.strip() for p in parts if p and p.strip())


def _docx_entry(doc, heading: str, meta: str, bullets: List[str]) -> None:
    if heading:
        doc.add_paragraph().add_run(heading).bold = True
    if meta:
        doc.add_paragraph(meta).runs[0].italic = True
    for line in bullets:
        if line.strip():
            doc.add_paragraph(line.strip(), style="List Bullet")


def render_cv_docx_bytes(cv: CVData) -> bytes:
    """Plain single-column Word document; templates and themes only apply to HTML/PDF."""
    from docx.enum.text import WD_ALIGN_PARAGRAPH
    from docx.shared import Cm, Pt

    doc = Document()
    for section in doc.sections:
        section.top_margin = section.bottom_margin = Cm(2)
        section.left_margin = section.right_margin = Cm(2.2)
    doc.styles["Normal"].font.name = "Calibri"
    doc.styles["Normal"].font.size = Pt(10.5)

    info = cv.personal_info
    header = [(info.name or "Curriculum Vitae", Pt(18), True), (info.title, Pt(12), False)]
    header.append((_joined(" | ", *(value for _, value in info.visible_contacts())), Pt(9.5), False))
    for text, size, bold in header:
        if not text:
            continue
        para = doc.add_paragraph()
        para.alignment = WD_ALIGN_PARAGRAPH.CENTER
        run = para.add_run(text)
        run.bold = bold
        run.font.size = size

    if cv.summary.strip():
        doc.add_heading("Profile", level=2)
        doc.add_paragraph(cv.summary.strip())

    if cv.experience:
        doc.add_heading("Experience", level=2)
        for exp in cv.experience:
            dates = _joined(" – ", exp.start_date, exp.end_date)
            _docx_entry(doc, _joined(", ", exp.job_title, exp.company), _joined(" | ", exp.location, dates), exp.responsibilities)

    if cv.education:
        doc.add_heading("Education", level=2)
        for edu in cv.education:
            meta = _joined(" | ", edu.institution, edu.location, edu.graduation_date)
            _docx_entry(doc, edu.degree, meta, edu.details)

    groups = [g for g in cv.skills if g.skills]
    if groups:
        doc.add_heading("Skills", level=2)
        for group in groups:
            para = doc.add_paragraph()
            if group.category:
                para.add_run(f"{group.category}: ").bold = True
            para.add_run(", ".join(group.skills))

    buf = BytesIO()
    doc.save(buf)
    return buf.getvalue()
