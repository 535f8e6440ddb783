"""
Export Service - print-ready PDF documents

Rendering works purely on hydrated records (ExportProduct, DeliveryDetail):
every foreign key is already resolved to a display name, and nothing here
touches the store.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from datetime import datetime
from typing import Sequence

from fpdf import FPDF

from ..entities import DeliveryDetail, ExportProduct
from ..time_utils import format_display_date

logger = logging.getLogger(__name__)

DEFAULT_APP_NAME = "Delivery Note Manager"

# A4 portrait, 10mm margins -> 190mm usable width
COL_PRODUCT = 90
COL_QTY = 25
COL_UNIT = 35
COL_SUBTOTAL = 40


class ExportError(Exception):
    """Raised when an export cannot be produced."""


@dataclass(frozen=True)
class ProductSummary:
    total_products: int
    total_value: float
    with_delivery_date: int


def clean_text(text) -> str:
    """Core PDF fonts are latin-1 only; replace anything else."""
    if not text:
        return ""
    return str(text).encode("latin-1", "replace").decode("latin-1")


def format_money(value: float) -> str:
    return f"${value:.2f}"


def summarize_products(rows: Sequence[ExportProduct]) -> ProductSummary:
    return ProductSummary(
        total_products=len(rows),
        total_value=sum(row.product.price for row in rows),
        with_delivery_date=sum(1 for row in rows if row.product.delivery_date),
    )


class DocumentPDF(FPDF):
    def __init__(self, title: str, footer_text: str):
        super().__init__(orientation="P", unit="mm", format="A4")
        self.document_title = title
        self.footer_text = footer_text
        self.set_margins(10, 10, 10)
        self.set_auto_page_break(auto=True, margin=15)

    def header(self):
        self.set_font("Helvetica", "B", 16)
        self.cell(0, 10, clean_text(self.document_title), align="C", new_x="LMARGIN", new_y="NEXT")
        self.set_draw_color(102, 126, 234)
        self.set_line_width(0.6)
        self.line(10, self.get_y(), 200, self.get_y())
        self.ln(4)

    def footer(self):
        self.set_y(-15)
        self.set_font("Helvetica", "I", 8)
        self.set_text_color(150, 150, 150)
        self.cell(0, 10, clean_text(f"{self.footer_text} - Page {self.page_no()}"), align="C")
        self.set_text_color(0, 0, 0)

    def section_title(self, text: str):
        self.set_font("Helvetica", "B", 12)
        self.cell(0, 8, clean_text(text), new_x="LMARGIN", new_y="NEXT")

    def labelled_line(self, label: str, value: str):
        self.set_font("Helvetica", "B", 10)
        self.cell(35, 6, clean_text(f"{label}:"))
        self.set_font("Helvetica", "", 10)
        self.multi_cell(0, 6, clean_text(value) or "-", new_x="LMARGIN", new_y="NEXT")


def render_products_pdf(
    rows: Sequence[ExportProduct],
    *,
    generated_at: datetime | None = None,
    app_name: str = DEFAULT_APP_NAME,
) -> bytes:
    """Product list with a summary block and one card per product."""
    if not rows:
        raise ExportError("No products selected")

    generated_at = generated_at or datetime.now()
    summary = summarize_products(rows)

    pdf = DocumentPDF("Product List", f"This document was automatically generated by {app_name}")
    pdf.add_page()

    pdf.set_font("Helvetica", "", 9)
    pdf.set_text_color(100, 100, 100)
    pdf.cell(
        0, 5,
        f"Generated on {generated_at.strftime('%Y-%m-%d')} at {generated_at.strftime('%H:%M:%S')}",
        align="C", new_x="LMARGIN", new_y="NEXT",
    )
    pdf.set_text_color(0, 0, 0)
    pdf.ln(3)

    pdf.section_title("Summary")
    pdf.set_fill_color(245, 247, 250)
    pdf.set_font("Helvetica", "B", 9)
    for label in ("Total Products", "Total Value", "With Delivery Date"):
        pdf.cell(63, 6, label, border=1, align="C", fill=True)
    pdf.ln()
    pdf.set_font("Helvetica", "", 11)
    pdf.cell(63, 8, str(summary.total_products), border=1, align="C")
    pdf.cell(63, 8, format_money(summary.total_value), border=1, align="C")
    pdf.cell(63, 8, str(summary.with_delivery_date), border=1, align="C", new_x="LMARGIN", new_y="NEXT")
    pdf.ln(5)

    pdf.section_title("Products")
    for row in rows:
        product = row.product
        pdf.set_font("Helvetica", "B", 11)
        pdf.cell(150, 7, clean_text(product.name))
        pdf.cell(40, 7, format_money(product.price), align="R", new_x="LMARGIN", new_y="NEXT")
        if product.note:
            pdf.labelled_line("Note", product.note)
        if product.delivery_date:
            pdf.labelled_line("Delivery Date", format_display_date(product.delivery_date))
        if row.user_name:
            pdf.labelled_line("Assigned to", row.user_name)
        pdf.set_draw_color(224, 224, 224)
        pdf.set_line_width(0.2)
        pdf.line(10, pdf.get_y() + 1, 200, pdf.get_y() + 1)
        pdf.ln(3)

    return bytes(pdf.output())


def render_delivery_pdf(detail: DeliveryDetail, *, app_name: str = DEFAULT_APP_NAME) -> bytes:
    """Delivery note: customer, delivery info, items table, stored total, notes."""
    delivery = detail.delivery
    user = detail.user

    pdf = DocumentPDF(f"Delivery Note #{delivery.id}", f"This document was automatically generated by {app_name}")
    pdf.add_page()

    pdf.section_title("Customer Information")
    pdf.labelled_line("Name", user.name if user else "Unknown")
    pdf.labelled_line("Address", user.address if user else "")
    pdf.labelled_line("Phone", user.phone if user else "")
    pdf.labelled_line("Email", (user.email or "") if user else "")
    pdf.ln(3)

    pdf.section_title("Delivery Information")
    pdf.labelled_line("Date", format_display_date(delivery.date))
    pdf.labelled_line("Status", delivery.status)
    pdf.ln(3)

    pdf.section_title("Items")
    pdf.set_fill_color(98, 0, 238)
    pdf.set_text_color(255, 255, 255)
    pdf.set_font("Helvetica", "B", 10)
    pdf.cell(COL_PRODUCT, 8, "Product", border=1, fill=True)
    pdf.cell(COL_QTY, 8, "Quantity", border=1, align="C", fill=True)
    pdf.cell(COL_UNIT, 8, "Unit Price", border=1, align="R", fill=True)
    pdf.cell(COL_SUBTOTAL, 8, "Subtotal", border=1, align="R", fill=True, new_x="LMARGIN", new_y="NEXT")
    pdf.set_text_color(0, 0, 0)

    pdf.set_font("Helvetica", "", 10)
    for line in detail.lines:
        item = line.item
        pdf.cell(COL_PRODUCT, 7, clean_text(line.product_name), border=1)
        pdf.cell(COL_QTY, 7, str(item.quantity), border=1, align="C")
        pdf.cell(COL_UNIT, 7, format_money(item.unit_price), border=1, align="R")
        pdf.cell(COL_SUBTOTAL, 7, format_money(item.subtotal), border=1, align="R", new_x="LMARGIN", new_y="NEXT")

    pdf.ln(4)
    pdf.set_font("Helvetica", "B", 14)
    pdf.set_text_color(98, 0, 238)
    # Stored snapshot, not a sum of the lines above
    pdf.cell(0, 8, f"Total: {format_money(delivery.total_amount)}", align="R", new_x="LMARGIN", new_y="NEXT")
    pdf.set_text_color(0, 0, 0)

    if delivery.notes:
        pdf.ln(4)
        pdf.section_title("Notes")
        pdf.set_font("Helvetica", "", 10)
        pdf.multi_cell(0, 5, clean_text(delivery.notes), new_x="LMARGIN", new_y="NEXT")

    return bytes(pdf.output())


def products_filename(generated_at: datetime | None = None) -> str:
    generated_at = generated_at or datetime.now()
    return f"products_{generated_at.strftime('%Y%m%d_%H%M%S')}.pdf"


def delivery_filename(delivery_id: int) -> str:
    return f"delivery_note_{delivery_id}.pdf"


def write_export(data: bytes, filename: str, export_dir: str) -> str:
    os.makedirs(export_dir, exist_ok=True)
    path = os.path.join(export_dir, filename)
    with open(path, "wb") as fh:
        fh.write(data)
    logger.info("Wrote export %s (%d bytes)", path, len(data))
    return path
