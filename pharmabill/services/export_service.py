from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from shutil import which
from typing import Any, Dict, Optional

import pdfkit  # utilisé si wkhtmltopdf dispo
from jinja2 import Environment, FileSystemLoader, select_autoescape

from pharmabill.config import Settings, get_settings
from pharmabill.errors import ExportError
from pharmabill.formatters import format_currency, format_date, number_to_words
from pharmabill.models.document import Document, Invoice
from pharmabill.models.settings import AppSettings, CompanyInfo
from pharmabill.storage.repo import CollectionKind, EntityRepository

logger = logging.getLogger(__name__)

TEMPLATES_DIR = Path(__file__).resolve().parents[1] / "templates" / "pdf"


def _slug(text: str) -> str:
    text = (text or "").strip()
    text = re.sub(r'[\\/:*?"<>|\n\r\t]', "_", text)
    text = re.sub(r"\s+", "_", text)
    return text or "document"


def _clean_path(p: str) -> str:
    """Corrige 'C\\:\\Program Files\\...' -> 'C:\\Program Files\\...' et normalise."""
    if not p:
        return ""
    p = p.strip().strip('"').strip("'")
    p = p.replace("\\:", ":")
    return os.path.normpath(p)


def find_wkhtmltopdf(configured: Optional[str] = None) -> Optional[str]:
    """
    Localise wkhtmltopdf :
    - PHARMABILL_WKHTMLTOPDF_PATH (config)
    - variables d'env WKHTMLTOPDF / WKHTMLTOPDF_CMD
    - chemins Windows connus
    - PATH
    """
    for val in (configured, os.environ.get("WKHTMLTOPDF"), os.environ.get("WKHTMLTOPDF_CMD")):
        if val:
            path = _clean_path(val)
            if Path(path).is_file():
                return path

    for c in (
        r"C:\Program Files\wkhtmltopdf\bin\wkhtmltopdf.exe",
        r"C:\Program Files (x86)\wkhtmltopdf\bin\wkhtmltopdf.exe",
    ):
        if Path(c).is_file():
            return c

    found = which("wkhtmltopdf")
    return _clean_path(found) if found else None


def _render_pdf_with_weasyprint(html: str, out_path: Path, base_url: Optional[str]) -> None:
    """Fallback WeasyPrint (si wkhtmltopdf absent)."""
    try:
        from weasyprint import CSS, HTML
    except ImportError as e:
        raise ExportError(
            "wkhtmltopdf not found and WeasyPrint is not installed. "
            "Install WeasyPrint (pip install pharmabill[weasyprint]) or configure wkhtmltopdf."
        ) from e

    css_file = TEMPLATES_DIR / "stylesheet.css"
    styles = [CSS(filename=str(css_file))] if css_file.exists() else None
    HTML(string=html, base_url=base_url).write_pdf(str(out_path), stylesheets=styles)


class ExportService:
    """Rendu imprimable (HTML puis PDF) des proformas et factures."""

    def __init__(self, repo: EntityRepository, settings: Optional[Settings] = None):
        self.repo = repo
        self.settings = settings or get_settings()
        self.env = Environment(
            loader=FileSystemLoader(str(TEMPLATES_DIR)),
            autoescape=select_autoescape(["html", "xml"]),
        )
        self.env.filters["money"] = lambda v: format_currency(v, self.settings.currency_suffix)
        self.env.filters["fr_date"] = format_date

    def _context(self, doc: Document) -> Dict[str, Any]:
        company: CompanyInfo = self.repo.load(CollectionKind.COMPANY_INFO)  # type: ignore[assignment]
        prefs: AppSettings = self.repo.load(CollectionKind.SETTINGS)  # type: ignore[assignment]
        is_invoice = isinstance(doc, Invoice)
        return {
            "doc": doc,
            "title": "Facture" if is_invoice else "Proforma",
            "is_invoice": is_invoice,
            "company": company,
            "show_unit": prefs.show_unit_column,
            "amount_in_words": f"{number_to_words(max(0, doc.total))} Francs CFA",
        }

    def render_html(self, doc: Document) -> str:
        tpl = self.env.get_template("document.html")
        return tpl.render(**self._context(doc))

    def pdf_filename(self, doc: Document) -> str:
        head = "FACTURE" if isinstance(doc, Invoice) else "PROFORMA"
        return f"{head}_{_slug(doc.number or doc.id)}.pdf"

    def export_pdf(self, doc: Document, out_dir: Optional[os.PathLike] = None) -> Path:
        """
        Génère le PDF du document.
        Essaie wkhtmltopdf (pdfkit) en priorité, sinon fallback WeasyPrint.
        """
        html = self.render_html(doc)
        exports_dir = Path(out_dir) if out_dir else Path(self.settings.exports_dir)
        exports_dir.mkdir(parents=True, exist_ok=True)
        out_path = exports_dir / self.pdf_filename(doc)

        wkhtml = find_wkhtmltopdf(self.settings.wkhtmltopdf_path)
        if wkhtml:
            try:
                config = pdfkit.configuration(wkhtmltopdf=wkhtml)
                options = {"enable-local-file-access": None, "quiet": "", "encoding": "UTF-8"}
                css_path = str((TEMPLATES_DIR / "stylesheet.css").resolve())
                pdfkit.from_string(html, str(out_path), options=options, configuration=config, css=css_path)
                return out_path
            except (IOError, OSError) as e:
                logger.warning("wkhtmltopdf failed (%s), falling back to WeasyPrint", e)

        _render_pdf_with_weasyprint(html, out_path, base_url=str(TEMPLATES_DIR.resolve()))
        return out_path
