import io
from collections.abc import Callable

import pytest
from reportlab.lib.pagesizes import A4
from reportlab.pdfgen import canvas

INVOICE_A_LINES = [
    "GRUPO A FACTURA",
    "ORIGINAL",
    "CODIGO N° 001",
    "N° 00723-0019175",
    "Fecha: 11/04/2025",
    "Emisor CUIT 30-12345678-9",
    "Cliente CUIT 20-98765432-1",
]

INVOICE_B_LINES = [
    "B FACTURA",
    "CODIGO N° 006",
    "N° 00001-00000042",
    "Fecha: 02/03/2024",
    "Emisor CUIT 30-11111111-1",
    "Cliente CUIT 27-22222222-3",
]


def _render_pdf(pages: list[list[str]]) -> bytes:
    buf = io.BytesIO()
    c = canvas.Canvas(buf, pagesize=A4)
    for lines in pages:
        y = 780
        for line in lines:
            c.drawString(72, y, line)
            y -= 20
        c.showPage()
    c.save()
    return buf.getvalue()


@pytest.fixture()
def pdf_factory() -> Callable[[list[list[str]]], bytes]:
    """Build a PDF where each inner list is the text lines of one page."""
    return _render_pdf


@pytest.fixture()
def invoice_pdf_bytes() -> bytes:
    """Single-page type A invoice."""
    return _render_pdf([INVOICE_A_LINES])


@pytest.fixture()
def invoice_b_pdf_bytes() -> bytes:
    return _render_pdf([INVOICE_B_LINES])


@pytest.fixture()
def multi_page_pdf_bytes() -> bytes:
    """Invoice on page one, an unrelated annex on page two."""
    return _render_pdf([INVOICE_A_LINES, ["ANEXO DETALLE DE ITEMS", "Pagina dos"]])


@pytest.fixture()
def empty_pdf_bytes() -> bytes:
    """Generate a valid PDF with no text content (blank page)."""
    return _render_pdf([[]])
