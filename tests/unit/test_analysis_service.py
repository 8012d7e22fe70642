from unittest.mock import MagicMock

import pytest

from fiscal_indexer.detection.analyzer import InvoiceAnalyzer
from fiscal_indexer.detection.classifier import TieredTypeClassifier
from fiscal_indexer.ocr.base import BaseOcrEngine
from fiscal_indexer.ocr.exceptions import OcrError
from fiscal_indexer.ocr.models import OcrResult
from fiscal_indexer.processor.analysis_service import (
    DocumentAnalysisService,
    detection_quality,
)
from fiscal_indexer.repository.base import BaseDocumentRepository
from fiscal_indexer.repository.exceptions import DocumentNotFoundError
from fiscal_indexer.repository.models import DocumentContent

TEXT = (
    "GRUPO B\n"
    "CODIGO N° 006\n"
    "N° 00012-00000345\n"
    "Fecha: 02/01/2024\n"
    "CUIT 30-71234567-8\n"
    "CUIT 27-22333444-5\n"
)


def _make_service(
    ocr_text: str = TEXT,
) -> tuple[DocumentAnalysisService, MagicMock, MagicMock]:
    repository = MagicMock(spec=BaseDocumentRepository)
    repository.get_document_content.return_value = DocumentContent(b"%PDF-1.4", "application/pdf")
    ocr_engine = MagicMock(spec=BaseOcrEngine)
    ocr_engine.extract_text.return_value = OcrResult(
        text=ocr_text, confidence=88.5, language="spa+eng", page_count=2
    )
    service = DocumentAnalysisService(
        repository=repository,
        ocr_engine=ocr_engine,
        analyzer=InvoiceAnalyzer(TieredTypeClassifier()),
        default_cabinet_id="cab-default",
    )
    return service, repository, ocr_engine


class TestDetectionQuality:
    @pytest.mark.parametrize(
        ("count", "expected"),
        [(5, "good"), (3, "good"), (2, "partial"), (1, "insufficient"), (0, "insufficient")],
    )
    def test_bands(self, count: int, expected: str) -> None:
        assert detection_quality(count) == expected


class TestAnalyzeDocument:
    def test_full_detection(self) -> None:
        service, repository, ocr_engine = _make_service()

        analysis = service.analyze_document(42)

        repository.get_document_content.assert_called_once_with(42, "cab-default")
        ocr_engine.extract_text.assert_called_once_with(b"%PDF-1.4", "spa+eng")
        assert analysis.success is True
        assert analysis.document_id == 42
        assert analysis.ocr_confidence == 88.5
        assert analysis.page_count == 2
        facts = analysis.facts
        assert facts is not None
        assert (facts.tipo_factura, facts.codigo_factura) == ("B", "006")
        assert facts.nro_factura == "00012-00000345"
        assert facts.fecha_factura == "02/01/2024"
        assert facts.cuit_cliente == "27-22333444-5"
        assert "Fields detected: 5/5 (good)" in analysis.message

    def test_explicit_cabinet_and_language(self) -> None:
        service, repository, ocr_engine = _make_service()
        service.analyze_document(42, cabinet_id="other", language="eng")
        repository.get_document_content.assert_called_once_with(42, "other")
        ocr_engine.extract_text.assert_called_once_with(b"%PDF-1.4", "eng")

    def test_missing_document(self) -> None:
        service, repository, ocr_engine = _make_service()
        repository.get_document_content.side_effect = DocumentNotFoundError("404")

        analysis = service.analyze_document(7)

        assert analysis.success is False
        assert analysis.facts is None
        assert "Could not read document 7" in analysis.message
        ocr_engine.extract_text.assert_not_called()

    def test_ocr_failure(self) -> None:
        service, _repository, ocr_engine = _make_service()
        ocr_engine.extract_text.side_effect = OcrError("tesseract missing")
        analysis = service.analyze_document(7)
        assert analysis.success is False
        assert "tesseract missing" in analysis.message

    def test_blank_ocr_text(self) -> None:
        service, *_ = _make_service(ocr_text="  \n ")
        analysis = service.analyze_document(7)
        assert analysis.success is False
        assert analysis.message == "No text to analyze"


class TestAnalyzeText:
    def test_partial_text_lists_missing_fields(self) -> None:
        service, *_ = _make_service()

        analysis = service.analyze_text("A FACTURA\nCOD. N° 01\nN° 00723-0019175")

        assert analysis.success is True
        assert analysis.facts is not None
        assert analysis.facts.tipo_factura == "A"
        assert "(good)" in analysis.message
        assert any("invoice date" in warning for warning in analysis.warnings)
        assert any("client CUIT" in warning for warning in analysis.warnings)

    def test_single_field_is_insufficient(self) -> None:
        service, *_ = _make_service()
        analysis = service.analyze_text("Remito 00723-0019175")
        assert "1/5 (insufficient)" in analysis.message

    def test_empty_text(self) -> None:
        service, *_ = _make_service()
        analysis = service.analyze_text("")
        assert analysis.success is False
        assert analysis.processed_at is not None
