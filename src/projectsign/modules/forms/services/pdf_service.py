import copy
import io
import json
from xml.sax.saxutils import escape
from datetime import datetime
from typing import Any, Dict, Optional

from PyPDF2 import PdfReader, PdfWriter
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import Image, Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle
from sqlalchemy.orm import Session

from projectsign.config import get_settings
from projectsign.errors import DependencyFailure, IntegrityMismatch
from projectsign.modules.forms.models.form import FORM_TYPE_LABELS, Form
from projectsign.modules.forms.services.form_service import FormService
from projectsign.modules.forms.services.integrity import INTEGRITY_TAMPERED, integrity_status
from projectsign.modules.storage.services.signature_storage import SignatureStorage
from projectsign.utils.logger import get_logger

logger = get_logger(__name__)


class PdfDocument:
    """Resultado del render: bytes del PDF y nombre de archivo sugerido."""

    def __init__(self, content: bytes, filename: str):
        self.content = content
        self.filename = filename


def _format_value(value: Any) -> str:
    if isinstance(value, bool):
        return "Yes" if value else "No"
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False)
    if value is None:
        return ""
    return str(value)


def _quote_items_table(items: list) -> Table:
    rows = [["#", "Description", "Qty", "Unit", "Unit price", "Total"]]
    for i, item in enumerate(items, start=1):
        rows.append([
            str(i),
            item.get("description", ""),
            _format_value(item.get("quantity")),
            item.get("unit", ""),
            _format_value(item.get("unit_price")),
            _format_value(item.get("total")),
        ])
    table = Table(rows, repeatRows=1)
    table.setStyle(TableStyle([
        ('BACKGROUND', (0, 0), (-1, 0), colors.HexColor("#2F5597")),
        ('TEXTCOLOR', (0, 0), (-1, 0), colors.white),
        ('FONTSIZE', (0, 0), (-1, -1), 9),
        ('GRID', (0, 0), (-1, -1), 0.25, colors.grey),
    ]))
    return table


def render_form_pdf(
    form_id: int,
    form_type,
    data: Dict[str, Any],
    project_name: str,
    contact_name: Optional[str],
    signed_at: Optional[datetime],
    signed_by: Optional[str],
    signature_hash: Optional[str],
    signature_image: Optional[bytes],
) -> bytes:
    """
    Genera el PDF del formulario con reportlab y le agrega metadatos con
    PyPDF2 (id del formulario y hash de la firma).
    """
    buffer = io.BytesIO()
    doc = SimpleDocTemplate(
        buffer, pagesize=A4, rightMargin=20 * mm,
        leftMargin=20 * mm, topMargin=20 * mm, bottomMargin=20 * mm
    )
    styles = getSampleStyleSheet()
    label = FORM_TYPE_LABELS.get(form_type, str(form_type))

    elements = [
        Paragraph(f"{label} ({form_type.value})", styles['Title']),
        Paragraph(f"Project: {escape(project_name)}", styles['Normal']),
    ]
    if contact_name:
        elements.append(Paragraph(f"Client: {escape(contact_name)}", styles['Normal']))
    elements.append(Spacer(1, 12))

    rows = [["Field", "Value"]]
    for key in sorted(data):
        if key == "items":
            continue
        rows.append([key, Paragraph(escape(_format_value(data[key])), styles['Normal'])])
    table = Table(rows, colWidths=[60 * mm, 110 * mm], repeatRows=1)
    table.setStyle(TableStyle([
        ('BACKGROUND', (0, 0), (-1, 0), colors.HexColor("#2F5597")),
        ('TEXTCOLOR', (0, 0), (-1, 0), colors.white),
        ('FONTSIZE', (0, 0), (-1, -1), 9),
        ('VALIGN', (0, 0), (-1, -1), 'TOP'),
        ('BACKGROUND', (0, 1), (-1, -1), colors.whitesmoke),
        ('GRID', (0, 0), (-1, -1), 0.25, colors.grey),
    ]))
    if isinstance(data.get("items"), list):
        elements.extend([_quote_items_table(data["items"]), Spacer(1, 12)])
    elements.extend([table, Spacer(1, 18)])

    if signed_at is not None:
        elements.append(Paragraph("Signature", styles['Heading2']))
        if signature_image:
            elements.append(Image(io.BytesIO(signature_image), width=60 * mm, height=25 * mm, kind='proportional'))
        elements.append(Paragraph(f"Signed by: {escape(signed_by or '')}", styles['Normal']))
        elements.append(Paragraph(f"Signed at: {signed_at.strftime('%d/%m/%Y %H:%M')} UTC", styles['Normal']))
        elements.append(Paragraph(f"SHA-256: {signature_hash or ''}", styles['Code']))
    else:
        elements.append(Paragraph("Not signed", styles['Italic']))

    doc.build(elements)

    reader = PdfReader(io.BytesIO(buffer.getvalue()))
    writer = PdfWriter()
    for page in reader.pages:
        writer.add_page(page)
    metadata = {
        "/Title": f"{form_type.value}-{form_id}",
        "/Subject": project_name or "",
        "/Producer": "ProjectSign",
        "/ProjectSignFormId": str(form_id),
    }
    if signature_hash:
        metadata["/ProjectSignSignatureHash"] = signature_hash
    writer.add_metadata(metadata)

    out = io.BytesIO()
    writer.write(out)
    return out.getvalue()


class PdfJob:
    """
    Todo lo necesario para renderizar un formulario, copiado fuera de la
    sesión de base de datos.
    """

    def __init__(self, form_id: int, filename: str, render_args: Dict[str, Any]):
        self.form_id = form_id
        self.filename = filename
        self.render_args = render_args


class PdfService:

    @staticmethod
    def prepare_export(session: Session, storage: SignatureStorage, user_id: int, form_id: int) -> PdfJob:
        """
        Carga el formulario del usuario y descarga la imagen de firma.

        Rechaza formularios firmados cuyo contenido ya no coincide con el hash
        guardado.
        """
        form: Form = FormService.get_form(session, user_id, form_id)
        if integrity_status(form) == INTEGRITY_TAMPERED:
            logger.error("form_integrity_mismatch", form_id=form_id)
            raise IntegrityMismatch(form_id)

        signature_image = None
        if form.signature_url:
            timeout = get_settings().image_fetch_timeout_seconds
            signature_image = storage.fetch(form.signature_url, timeout=timeout)

        project = form.project
        contact = project.contact if project else None
        return PdfJob(
            form_id=form.id,
            filename=f"{form.type.value}-{form.id}.pdf",
            render_args={
                "form_id": form.id,
                "form_type": form.type,
                "data": copy.deepcopy(form.data),
                "project_name": project.name if project else "Unknown Project",
                "contact_name": contact.name if contact else None,
                "signed_at": form.signed_at,
                "signed_by": form.signed_by,
                "signature_hash": form.signature_hash,
                "signature_image": signature_image,
            },
        )

    @staticmethod
    def render(job: PdfJob) -> PdfDocument:
        """Renderiza un ``PdfJob``; no usa la base de datos."""
        try:
            content = render_form_pdf(**job.render_args)
        except (ValueError, OSError) as e:
            logger.error("pdf_render_failed", form_id=job.form_id, error=str(e))
            raise DependencyFailure("pdf_renderer", f"PDF rendering failed: {e}")

        logger.info("pdf_rendered", form_id=job.form_id, size=len(content))
        return PdfDocument(content, job.filename)

