import pytest

from fiscal_indexer.ocr.exceptions import OcrError
from fiscal_indexer.ocr.pdfplumber_adapter import PdfPlumberTextEngine


class TestPdfPlumberTextEngine:
    def test_extract_returns_invoice_text(self, invoice_pdf_bytes: bytes) -> None:
        engine = PdfPlumberTextEngine()
        result = engine.extract_text(invoice_pdf_bytes)
        assert "GRUPO A FACTURA" in result.text
        assert "00723-0019175" in result.text
        assert result.confidence == 100.0
        assert result.language == "spa+eng"
        assert result.page_count == 1

    def test_reads_first_page_only(self, multi_page_pdf_bytes: bytes) -> None:
        engine = PdfPlumberTextEngine()
        result = engine.extract_text(multi_page_pdf_bytes)
        assert "CODIGO" in result.text
        assert "ANEXO" not in result.text
        assert result.page_count == 2

    def test_blank_page_has_zero_confidence(self, empty_pdf_bytes: bytes) -> None:
        engine = PdfPlumberTextEngine()
        result = engine.extract_text(empty_pdf_bytes)
        assert result.text == ""
        assert result.confidence == 0.0

    def test_language_override(self, invoice_pdf_bytes: bytes) -> None:
        engine = PdfPlumberTextEngine(default_language="spa")
        assert engine.extract_text(invoice_pdf_bytes).language == "spa"
        assert engine.extract_text(invoice_pdf_bytes, "eng").language == "eng"

    def test_rejects_non_pdf(self) -> None:
        engine = PdfPlumberTextEngine()
        with pytest.raises(OcrError, match="only reads PDF"):
            engine.extract_text(b"\x89PNG\r\n")

    def test_raises_on_broken_pdf(self) -> None:
        engine = PdfPlumberTextEngine()
        with pytest.raises(OcrError):
            engine.extract_text(b"%PDF-1.4 truncated garbage")

    def test_result_is_stripped(self, invoice_pdf_bytes: bytes) -> None:
        result = PdfPlumberTextEngine().extract_text(invoice_pdf_bytes)
        assert result.text == result.text.strip()
