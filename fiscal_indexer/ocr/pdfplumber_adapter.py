import io

import pdfplumber

from fiscal_indexer.ocr.base import BaseOcrEngine, is_pdf
from fiscal_indexer.ocr.exceptions import OcrError
from fiscal_indexer.ocr.models import OcrResult


class PdfPlumberTextEngine(BaseOcrEngine):
    """Reads the embedded text layer of born-digital PDFs; no rasterisation."""

    def __init__(self, default_language: str = "spa+eng") -> None:
        self._default_language = default_language

    def extract_text(self, content: bytes, language: str | None = None) -> OcrResult:
        if not is_pdf(content):
            raise OcrError("pdfplumber engine only reads PDF content")
        try:
            with pdfplumber.open(io.BytesIO(content)) as pdf:
                page_count = len(pdf.pages)
                text = (pdf.pages[0].extract_text() or "") if page_count else ""
        except Exception as exc:
            raise OcrError(f"pdfplumber extraction failed: {exc}") from exc
        text = text.strip()
        return OcrResult(
            text=text,
            confidence=100.0 if text else 0.0,
            language=language or self._default_language,
            page_count=page_count,
        )
