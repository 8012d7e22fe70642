import time

from fiscal_indexer.detection.analyzer import InvoiceAnalyzer
from fiscal_indexer.logging.logger import Log
from fiscal_indexer.ocr.base import BaseOcrEngine
from fiscal_indexer.ocr.exceptions import OcrError
from fiscal_indexer.ocr.models import RawDocumentText
from fiscal_indexer.processor.exceptions import ClassificationAmbiguousError, ExtractionError
from fiscal_indexer.processor.field_policy import FieldPolicy
from fiscal_indexer.processor.models import DocumentState, OutcomeStatus
from fiscal_indexer.processor.pipeline import DocumentContext, PipelineStep
from fiscal_indexer.repository.base import BaseDocumentRepository


def _elapsed_ms(started: float) -> float:
    return (time.perf_counter() - started) * 1000


class FetchContentStep(PipelineStep):
    def __init__(self, repository: BaseDocumentRepository) -> None:
        self._repository = repository

    def run(self, context: DocumentContext) -> DocumentContext:
        context.content = self._repository.get_document_content(
            context.document_id, context.request.cabinet_id
        )
        Log.debug(
            f"Fetched {len(context.content.data)} bytes for document {context.document_id}"
        )
        return context


class RunOcrStep(PipelineStep):
    def __init__(self, ocr_engine: BaseOcrEngine) -> None:
        self._ocr_engine = ocr_engine

    def run(self, context: DocumentContext) -> DocumentContext:
        if context.content is None:
            raise ValueError("DocumentContext.content must be set before OCR")
        started = time.perf_counter()
        try:
            result = self._ocr_engine.extract_text(
                context.content.data, context.request.language
            )
        except OcrError:
            context.state = DocumentState.OCR_FAILED
            raise
        context.raw_text = RawDocumentText.from_result(context.document_id, result)
        if not result.text.strip():
            context.state = DocumentState.OCR_FAILED
            raise ExtractionError(f"OCR returned no text for document {context.document_id}")
        context.ocr_ms = _elapsed_ms(started)
        Log.debug(
            f"OCR read {len(result.text)} chars from document {context.document_id} "
            f"(confidence {result.confidence:.1f})"
        )
        return context


class AnalyzeStep(PipelineStep):
    def __init__(self, analyzer: InvoiceAnalyzer) -> None:
        self._analyzer = analyzer

    def run(self, context: DocumentContext) -> DocumentContext:
        if context.raw_text is None:
            raise ValueError("DocumentContext.raw_text must be set before analysis")
        report = self._analyzer.analyze(context.raw_text.text)
        context.report = report
        context.warnings.extend(report.warnings)
        if report.facts.detected_field_count:
            context.state = DocumentState.FIELDS_READY
        elif report.ambiguous:
            raise ClassificationAmbiguousError(
                f"Conflicting invoice types {', '.join(report.conflicting_types)} "
                "and no other field detected"
            )
        else:
            context.state = DocumentState.EXTRACTION_INCOMPLETE
        Log.debug(
            f"Document {context.document_id}: {report.facts.detected_field_count}/5 fields, "
            f"confidence {report.facts.confianza:.2f}"
        )
        return context


class DecideFieldsStep(PipelineStep):
    """Builds the update set; reads current values first when only blanks may be filled."""

    def __init__(self, policy: FieldPolicy, repository: BaseDocumentRepository) -> None:
        self._policy = policy
        self._repository = repository

    def run(self, context: DocumentContext) -> DocumentContext:
        if context.state is not DocumentState.FIELDS_READY or context.report is None:
            return context
        current = None
        if context.request.only_update_empty_fields:
            current = self._repository.get_index_fields(
                context.document_id, context.request.cabinet_id
            )
        context.decision = self._policy.decide(context.document_id, context.report.facts, current)
        context.warnings.extend(context.decision.warnings)
        return context


class ApplyUpdateStep(PipelineStep):
    def __init__(self, repository: BaseDocumentRepository) -> None:
        self._repository = repository

    def run(self, context: DocumentContext) -> DocumentContext:
        decision = context.decision
        if decision is None or not decision.fields:
            if decision is not None and decision.withheld:
                context.status = OutcomeStatus.SKIPPED
                context.message = "All detected fields already hold values"
            else:
                context.status = OutcomeStatus.NO_CHANGES
                context.message = "No valid fields to update"
            return context
        if context.request.dry_run:
            context.status = OutcomeStatus.UPDATED
            context.message = f"DRY-RUN: {len(decision.fields)} fields would be updated"
            return context
        started = time.perf_counter()
        self._repository.write_index_fields(
            context.document_id, context.request.cabinet_id, decision.fields
        )
        context.update_ms = _elapsed_ms(started)
        context.status = OutcomeStatus.UPDATED
        context.message = f"{len(decision.fields)} fields updated"
        Log.info(f"Document {context.document_id}: updated {', '.join(decision.fields)}")
        return context
