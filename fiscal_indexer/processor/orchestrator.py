import time
import uuid
from collections.abc import Callable
from datetime import UTC, datetime
from statistics import fmean

from fiscal_indexer.audit.base import BaseAuditSink
from fiscal_indexer.audit.csv_sink import (
    BATCH_SUMMARIES,
    CUIT_ISSUES,
    OCR_FAILURES,
    REPOSITORY_FAILURES,
    VALIDATION_ISSUES,
)
from fiscal_indexer.audit.factory import AuditSinkFactory
from fiscal_indexer.config.settings import Settings
from fiscal_indexer.detection.analyzer import InvoiceAnalyzer
from fiscal_indexer.detection.classifier import UniqueTypeClassifier
from fiscal_indexer.logging.logger import Log
from fiscal_indexer.ocr.exceptions import OcrError
from fiscal_indexer.ocr.factory import OcrEngineFactory
from fiscal_indexer.processor.exceptions import (
    ClassificationAmbiguousError,
    ExtractionError,
    ResolutionError,
)
from fiscal_indexer.processor.field_policy import CUIT_FIELD, DATE_FIELD, LETTER_FIELD, FieldPolicy
from fiscal_indexer.processor.models import (
    MAX_DOCUMENT_COUNT,
    BatchResult,
    BulkUpdateRequest,
    DocumentOutcome,
    OutcomeStatus,
    PerformanceStats,
)
from fiscal_indexer.processor.pipeline import DocumentContext, PipelineStep
from fiscal_indexer.processor.steps import (
    AnalyzeStep,
    ApplyUpdateStep,
    DecideFieldsStep,
    FetchContentStep,
    RunOcrStep,
)
from fiscal_indexer.repository.base import BaseDocumentRepository
from fiscal_indexer.repository.exceptions import RepositoryError

PROGRESS_INTERVAL = 10


def new_batch_id(now: datetime) -> str:
    return f"batch_{now:%Y%m%d_%H%M%S}_{uuid.uuid4().hex[:8]}"


def _utcnow() -> datetime:
    return datetime.now(UTC)


class BulkOrchestrator:
    """Runs the document pipeline over the most recent documents of a cabinet.

    Documents are processed one at a time. A failure inside one document is
    recorded as that document's Failed outcome and never stops the batch;
    only failing to list the documents fails the batch itself.
    """

    def __init__(
        self,
        repository: BaseDocumentRepository,
        steps: list[PipelineStep],
        audit_sink: BaseAuditSink,
        max_document_limit: int = MAX_DOCUMENT_COUNT,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._repository = repository
        self._steps = steps
        self._audit_sink = audit_sink
        self._max_document_limit = min(max_document_limit, MAX_DOCUMENT_COUNT)
        self._clock = clock

    def run(self, request: BulkUpdateRequest) -> BatchResult:
        started_at = self._clock()
        result = BatchResult(
            batch_id=new_batch_id(started_at),
            start_time=started_at,
            dry_run=request.dry_run,
            only_update_empty_fields=request.only_update_empty_fields,
            cabinet_id=request.cabinet_id,
            language=request.language,
        )
        Log.bind_batch(result.batch_id)
        try:
            self._run(request, result)
        finally:
            Log.clear_batch()
        return result

    def _run(self, request: BulkUpdateRequest, result: BatchResult) -> None:
        mode = "DRY-RUN" if request.dry_run else "LIVE"
        Log.info(
            f"Starting {mode} batch of {request.document_count} documents "
            f"in cabinet {request.cabinet_id}"
        )
        if request.document_count > self._max_document_limit:
            self._fail(
                result,
                f"Requested {request.document_count} documents exceeds the configured "
                f"limit of {self._max_document_limit}",
            )
            self._audit_summary(result)
            return
        try:
            document_ids = self._resolve(request)
        except ResolutionError as exc:
            self._fail(result, str(exc))
            self._audit_summary(result)
            return

        elapsed_started = time.perf_counter()
        ocr_times: list[float] = []
        update_times: list[float] = []
        for position, document_id in enumerate(document_ids, start=1):
            context, outcome = self._process_document(document_id, request)
            result.record(outcome)
            self._count_issues(result, context)
            if context.ocr_ms is not None:
                ocr_times.append(context.ocr_ms)
            if context.update_ms is not None:
                update_times.append(context.update_ms)
            if position % PROGRESS_INTERVAL == 0:
                Log.info(
                    f"Progress: {position}/{len(document_ids)} processed "
                    f"({result.updated} updated, {result.failed} failed)"
                )

        elapsed_seconds = time.perf_counter() - elapsed_started
        result.performance = PerformanceStats(
            avg_ocr_ms=fmean(ocr_times) if ocr_times else 0.0,
            avg_update_ms=fmean(update_times) if update_times else 0.0,
            docs_per_second=result.total_processed / max(elapsed_seconds, 0.001),
            total_ocr_ms=sum(ocr_times),
            total_update_ms=sum(update_times),
        )
        result.end_time = self._clock()
        result.message = (
            f"{mode} batch finished: {result.total_processed} processed, "
            f"{result.updated} updated, {result.failed} failed, {result.skipped} skipped"
        )
        Log.info(result.message)
        self._audit_summary(result)

    def _resolve(self, request: BulkUpdateRequest) -> list[int]:
        try:
            document_ids = self._repository.list_recent_document_ids(
                request.cabinet_id, request.document_count
            )
        except Exception as exc:
            raise ResolutionError(f"Could not list documents: {exc}") from exc
        if not document_ids:
            raise ResolutionError(f"No documents found in cabinet {request.cabinet_id}")
        if len(document_ids) < request.document_count:
            Log.warning(
                f"Only {len(document_ids)} of {request.document_count} requested documents found"
            )
        return document_ids[: request.document_count]

    def _process_document(
        self, document_id: int, request: BulkUpdateRequest
    ) -> tuple[DocumentContext, DocumentOutcome]:
        context = DocumentContext(document_id=document_id, request=request)
        started = time.perf_counter()
        try:
            for step in self._steps:
                context = step.run(context)
        except Exception as exc:
            context.status = OutcomeStatus.FAILED
            context.failure_category = _failure_category(exc)
            context.message = f"Processing failed: {exc}"
            context.errors.append(str(exc))
            Log.error(f"Document {document_id} failed: {exc}")
            self._audit_failure(context, exc)
        self._audit_findings(context)
        outcome = context.to_outcome((time.perf_counter() - started) * 1000)
        return context, outcome

    def _fail(self, result: BatchResult, message: str) -> None:
        Log.error(f"Batch {result.batch_id} aborted: {message}")
        result.success = False
        result.message = message
        result.errors.append(message)
        result.end_time = self._clock()

    def _count_issues(self, result: BatchResult, context: DocumentContext) -> None:
        if context.status is OutcomeStatus.FAILED and context.failure_category != VALIDATION_ISSUES:
            result.count_issue(context.failure_category)
        validation_records = _validation_records(context)
        if validation_records:
            result.count_issue(VALIDATION_ISSUES, len(validation_records))
        if _cuit_issue(context) is not None:
            result.count_issue(CUIT_ISSUES)
        if context.report is not None and context.report.facts.tipo_factura == "E":
            result.count_issue("type_e_detected")

    def _audit_failure(self, context: DocumentContext, exc: Exception) -> None:
        # classification failures are written with the other validation findings
        if context.failure_category == VALIDATION_ISSUES:
            return
        if context.failure_category == REPOSITORY_FAILURES:
            fields = context.decision.fields if context.decision else {}
            self._audit_sink.append_record(
                REPOSITORY_FAILURES,
                {
                    "document_id": context.document_id,
                    "error_message": str(exc),
                    "fields_to_update": "; ".join(f"{k}={v}" for k, v in fields.items()),
                    "requires_manual_update": True,
                },
            )
            return
        self._audit_sink.append_record(
            OCR_FAILURES,
            {
                "document_id": context.document_id,
                "error_message": f"{type(exc).__name__}: {exc}",
                "partial_ocr_text": context.raw_text.text if context.raw_text else "",
                "requires_manual_review": True,
            },
        )

    def _audit_findings(self, context: DocumentContext) -> None:
        for record in _validation_records(context):
            self._audit_sink.append_record(VALIDATION_ISSUES, record)
        cuit_issue = _cuit_issue(context)
        if cuit_issue is not None:
            found_cuit, issue_type = cuit_issue
            self._audit_sink.append_record(
                CUIT_ISSUES,
                {
                    "document_id": context.document_id,
                    "found_cuit": found_cuit,
                    "issue_type": issue_type,
                    "details": "; ".join(context.warnings),
                    "requires_review": True,
                },
            )

    def _audit_summary(self, result: BatchResult) -> None:
        self._audit_sink.append_record(
            BATCH_SUMMARIES,
            {
                "batch_id": result.batch_id,
                "total_processed": result.total_processed,
                "updated": result.updated,
                "failed": result.failed,
                "skipped": result.skipped,
                "success_rate": f"{result.success_rate:.2f}",
                CUIT_ISSUES: result.issue_stats[CUIT_ISSUES],
                VALIDATION_ISSUES: result.issue_stats[VALIDATION_ISSUES],
                OCR_FAILURES: result.issue_stats[OCR_FAILURES],
                REPOSITORY_FAILURES: result.issue_stats[REPOSITORY_FAILURES],
            },
        )


def _failure_category(exc: Exception) -> str:
    if isinstance(exc, RepositoryError):
        return REPOSITORY_FAILURES
    if isinstance(exc, ClassificationAmbiguousError):
        return VALIDATION_ISSUES
    if not isinstance(exc, (OcrError, ExtractionError)):
        Log.exception(f"Unexpected {type(exc).__name__} while processing a document")
    return OCR_FAILURES


def _validation_record(
    context: DocumentContext, field_name: str, value: str, error: str, expected: str
) -> dict[str, object]:
    return {
        "document_id": context.document_id,
        "field_name": field_name,
        "detected_value": value,
        "validation_error": error,
        "expected_format": expected,
        "requires_review": True,
    }


def _validation_records(context: DocumentContext) -> list[dict[str, object]]:
    """Values discarded for this document, one audit row each."""
    records: list[dict[str, object]] = []
    report = context.report
    if report is not None:
        if report.ambiguous:
            records.append(
                _validation_record(
                    context,
                    LETTER_FIELD,
                    ", ".join(report.conflicting_types),
                    "conflicting invoice type signals",
                    "exactly one of A, B or E",
                )
            )
        for rejection in report.rejected_dates:
            records.append(
                _validation_record(
                    context, DATE_FIELD, rejection.value, rejection.reason, "dd/mm/yyyy"
                )
            )
    if context.decision is not None:
        for issue in context.decision.issues:
            records.append(
                _validation_record(
                    context, issue.field_name, issue.detected_value, issue.error,
                    issue.expected_format,
                )
            )
    return records


def _cuit_issue(context: DocumentContext) -> tuple[str, str] | None:
    """(value, issue type) when the client CUIT needs a human look."""
    if context.decision is not None:
        for issue in context.decision.issues:
            if issue.field_name == CUIT_FIELD:
                return issue.detected_value, "validation_error"
    report = context.report
    if report is not None and report.cuit_needs_review and report.facts.cuit_cliente:
        return report.facts.cuit_cliente, "single_cuit"
    return None


def build_orchestrator(
    settings: Settings,
    repository: BaseDocumentRepository,
    audit_sink: BaseAuditSink | None = None,
) -> BulkOrchestrator:
    """Wire the bulk pipeline: fetch -> OCR -> analyze -> decide -> apply."""
    ocr_engine = OcrEngineFactory.create(settings)
    analyzer = InvoiceAnalyzer(UniqueTypeClassifier())
    policy = FieldPolicy(
        empty_values=settings.bulk_empty_field_values,
        treat_placeholders_as_empty=settings.bulk_treat_placeholders_as_empty,
        log_placeholder_replacements=settings.bulk_log_placeholder_replacements,
    )
    steps: list[PipelineStep] = [
        FetchContentStep(repository),
        RunOcrStep(ocr_engine),
        AnalyzeStep(analyzer),
        DecideFieldsStep(policy, repository),
        ApplyUpdateStep(repository),
    ]
    return BulkOrchestrator(
        repository=repository,
        steps=steps,
        audit_sink=audit_sink or AuditSinkFactory.create(settings),
        max_document_limit=settings.bulk_max_document_limit,
    )
