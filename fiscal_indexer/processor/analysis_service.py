import time
from dataclasses import dataclass
from datetime import UTC, datetime

from fiscal_indexer.config.settings import Settings
from fiscal_indexer.detection.analyzer import InvoiceAnalyzer
from fiscal_indexer.detection.classifier import TieredTypeClassifier
from fiscal_indexer.detection.models import InvoiceFacts
from fiscal_indexer.logging.logger import Log
from fiscal_indexer.ocr.base import BaseOcrEngine
from fiscal_indexer.ocr.exceptions import OcrError
from fiscal_indexer.ocr.factory import OcrEngineFactory
from fiscal_indexer.repository.base import BaseDocumentRepository
from fiscal_indexer.repository.exceptions import RepositoryError

TOTAL_FIELDS = 5


@dataclass(frozen=True)
class DocumentAnalysis:
    """Result of analysing a single document or text."""

    success: bool
    message: str
    facts: InvoiceFacts | None = None
    warnings: tuple[str, ...] = ()
    document_id: int | None = None
    ocr_confidence: float = 0.0
    page_count: int = 0
    processing_time_ms: float = 0.0
    processed_at: datetime | None = None


def detection_quality(detected_fields: int) -> str:
    if detected_fields >= 3:
        return "good"
    if detected_fields >= 2:
        return "partial"
    return "insufficient"


class DocumentAnalysisService:
    """Analyses one document at a time with the tiered type classifier."""

    def __init__(
        self,
        repository: BaseDocumentRepository,
        ocr_engine: BaseOcrEngine,
        analyzer: InvoiceAnalyzer,
        default_cabinet_id: str,
        default_language: str = "spa+eng",
    ) -> None:
        self._repository = repository
        self._ocr_engine = ocr_engine
        self._analyzer = analyzer
        self._default_cabinet_id = default_cabinet_id
        self._default_language = default_language

    def analyze_document(
        self,
        document_id: int,
        cabinet_id: str | None = None,
        language: str | None = None,
    ) -> DocumentAnalysis:
        started = time.perf_counter()
        cabinet = cabinet_id or self._default_cabinet_id
        try:
            content = self._repository.get_document_content(document_id, cabinet)
            ocr = self._ocr_engine.extract_text(content.data, language or self._default_language)
        except (RepositoryError, OcrError) as exc:
            Log.error(f"Analysis of document {document_id} failed: {exc}")
            return DocumentAnalysis(
                success=False,
                message=f"Could not read document {document_id}: {exc}",
                document_id=document_id,
                processing_time_ms=(time.perf_counter() - started) * 1000,
                processed_at=datetime.now(UTC),
            )
        analysis = self.analyze_text(ocr.text)
        return DocumentAnalysis(
            success=analysis.success,
            message=analysis.message,
            facts=analysis.facts,
            warnings=analysis.warnings,
            document_id=document_id,
            ocr_confidence=ocr.confidence,
            page_count=ocr.page_count,
            processing_time_ms=(time.perf_counter() - started) * 1000,
            processed_at=analysis.processed_at,
        )

    def analyze_text(self, text: str) -> DocumentAnalysis:
        started = time.perf_counter()
        if not text or not text.strip():
            return DocumentAnalysis(
                success=False,
                message="No text to analyze",
                processed_at=datetime.now(UTC),
            )
        report = self._analyzer.analyze(text)
        detected = report.facts.detected_field_count
        message = (
            f"Analysis complete. Fields detected: {detected}/{TOTAL_FIELDS} "
            f"({detection_quality(detected)}). Confidence: {report.facts.confianza:.2f}"
        )
        Log.info(message)
        return DocumentAnalysis(
            success=True,
            message=message,
            facts=report.facts,
            warnings=report.warnings,
            processing_time_ms=(time.perf_counter() - started) * 1000,
            processed_at=datetime.now(UTC),
        )


def build_analysis_service(
    settings: Settings, repository: BaseDocumentRepository
) -> DocumentAnalysisService:
    return DocumentAnalysisService(
        repository=repository,
        ocr_engine=OcrEngineFactory.create(settings),
        analyzer=InvoiceAnalyzer(TieredTypeClassifier()),
        default_cabinet_id=settings.docuware_cabinet_id,
        default_language=settings.ocr_language,
    )
