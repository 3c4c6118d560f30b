"""
Invoice PDF Generator
Branded single-document invoice with line items, totals and payment summary
"""

import io
import logging
from typing import Optional

from reportlab.lib import colors
from reportlab.lib.pagesizes import letter
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle
from sqlalchemy.orm import Session

from ..models import BusinessSettings
from ..models_invoice import Invoice
from ..utils.sanitization import sanitize_string

logger = logging.getLogger(__name__)


class InvoicePDFGenerator:
    """Render an invoice to PDF bytes"""

    def __init__(self, invoice: Invoice, db: Session):
        self.invoice = invoice
        self.client = invoice.client
        self.settings: Optional[BusinessSettings] = (
            db.query(BusinessSettings).filter(BusinessSettings.account_id == invoice.account_id).first()
        )

        self.page_width, self.page_height = letter
        self.margin = 0.75 * inch

        self.brand_color = colors.HexColor("#14b8a6")
        self.dark_gray = colors.HexColor("#1e293b")
        self.light_gray = colors.HexColor("#f1f5f9")

    def generate(self) -> bytes:
        logger.info(f"📄 Generating PDF for invoice {self.invoice.invoice_number}")

        buffer = io.BytesIO()
        doc = SimpleDocTemplate(
            buffer,
            pagesize=letter,
            rightMargin=self.margin,
            leftMargin=self.margin,
            topMargin=self.margin,
            bottomMargin=self.margin,
            title=f"Invoice {self.invoice.invoice_number}",
        )

        styles = getSampleStyleSheet()
        title_style = ParagraphStyle(
            "InvoiceTitle", parent=styles["Heading1"], fontSize=24, textColor=self.brand_color, spaceAfter=12
        )
        body_style = ParagraphStyle(
            "InvoiceBody", parent=styles["Normal"], fontSize=10, textColor=self.dark_gray, spaceAfter=6
        )

        story = [Paragraph("INVOICE", title_style)]

        business_name = (self.settings.business_name if self.settings else None) or "FieldOps Pro"
        info_data = [
            ["From:", business_name],
            ["Bill To:", self.client.display_name if self.client else "Customer"],
            ["Invoice #:", self.invoice.invoice_number],
            ["Issue Date:", self._format_date(self.invoice.issue_date)],
            ["Due Date:", self._format_date(self.invoice.due_date)],
            ["Status:", (self.invoice.status or "draft").upper()],
        ]
        info_table = Table(info_data, colWidths=[1.5 * inch, 4.5 * inch])
        info_table.setStyle(
            TableStyle(
                [
                    ("FONT", (0, 0), (0, -1), "Helvetica-Bold", 10),
                    ("FONT", (1, 0), (1, -1), "Helvetica", 10),
                    ("TEXTCOLOR", (0, 0), (-1, -1), self.dark_gray),
                    ("BOTTOMPADDING", (0, 0), (-1, -1), 6),
                ]
            )
        )
        story.append(info_table)
        story.append(Spacer(1, 0.3 * inch))

        if self.invoice.title:
            story.append(Paragraph(f"<b>{sanitize_string(self.invoice.title)}</b>", body_style))
        if self.invoice.description:
            story.append(Paragraph(sanitize_string(self.invoice.description), body_style))

        table_data = [["Description", "Qty", "Unit Price", "Total"]]
        for item in self.invoice.line_items or []:
            table_data.append(
                [
                    Paragraph(sanitize_string(str(item.get("description", ""))), body_style),
                    f"{item.get('quantity') or 0:g}",
                    self._money(item.get("unit_price")),
                    self._money(item.get("total")),
                ]
            )

        items_table = Table(table_data, colWidths=[3.5 * inch, 0.8 * inch, 1.1 * inch, 1.1 * inch], repeatRows=1)
        items_table.setStyle(
            TableStyle(
                [
                    ("BACKGROUND", (0, 0), (-1, 0), self.brand_color),
                    ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
                    ("FONT", (0, 0), (-1, 0), "Helvetica-Bold", 10),
                    ("FONT", (0, 1), (-1, -1), "Helvetica", 9),
                    ("ALIGN", (1, 0), (-1, -1), "RIGHT"),
                    ("VALIGN", (0, 0), (-1, -1), "TOP"),
                    ("ROWBACKGROUNDS", (0, 1), (-1, -1), [colors.white, self.light_gray]),
                    ("GRID", (0, 0), (-1, -1), 0.5, colors.grey),
                ]
            )
        )
        story.append(Spacer(1, 0.2 * inch))
        story.append(items_table)
        story.append(Spacer(1, 0.2 * inch))

        totals_data = [
            ["Subtotal", self._money(self.invoice.subtotal)],
            [f"Tax ({(self.invoice.tax_rate or 0) * 100:.2f}%)", self._money(self.invoice.tax_amount)],
            ["Total", self._money(self.invoice.total_amount)],
            ["Paid", self._money(self.invoice.amount_paid)],
            ["Balance Due", self._money(self.invoice.balance_due)],
        ]
        totals_table = Table(totals_data, colWidths=[5.4 * inch, 1.1 * inch])
        totals_table.setStyle(
            TableStyle(
                [
                    ("FONT", (0, 0), (-1, -1), "Helvetica", 10),
                    ("FONT", (0, -1), (-1, -1), "Helvetica-Bold", 11),
                    ("ALIGN", (0, 0), (-1, -1), "RIGHT"),
                    ("LINEABOVE", (0, 2), (-1, 2), 0.5, self.dark_gray),
                    ("TEXTCOLOR", (0, -1), (-1, -1), self.brand_color),
                ]
            )
        )
        story.append(totals_table)

        doc.build(story, onFirstPage=self._add_page_number, onLaterPages=self._add_page_number)
        pdf_bytes = buffer.getvalue()
        buffer.close()

        logger.info(f"✅ Generated invoice PDF ({len(pdf_bytes)} bytes)")
        return pdf_bytes

    @staticmethod
    def _money(value) -> str:
        return f"${(value or 0):,.2f}"

    @staticmethod
    def _format_date(value) -> str:
        return value.strftime("%B %d, %Y") if value else "N/A"

    def _add_page_number(self, canvas_obj, doc):
        canvas_obj.setFont("Helvetica", 9)
        canvas_obj.setFillColor(colors.grey)
        canvas_obj.drawRightString(
            self.page_width - self.margin, self.margin / 2, f"Page {canvas_obj.getPageNumber()}"
        )


def generate_invoice_pdf(invoice: Invoice, db: Session) -> bytes:
    return InvoicePDFGenerator(invoice, db).generate()
