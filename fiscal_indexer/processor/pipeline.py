from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from fiscal_indexer.detection.models import AnalysisReport
from fiscal_indexer.ocr.models import RawDocumentText
from fiscal_indexer.processor.field_policy import FieldDecision
from fiscal_indexer.processor.models import (
    BulkUpdateRequest,
    DocumentOutcome,
    DocumentState,
    OutcomeStatus,
)
from fiscal_indexer.repository.models import DocumentContent


@dataclass(slots=True)
class DocumentContext:
    """Working data for one document while it moves through the steps."""

    document_id: int
    request: BulkUpdateRequest
    state: DocumentState = DocumentState.PENDING
    content: DocumentContent | None = None
    raw_text: RawDocumentText | None = None
    report: AnalysisReport | None = None
    decision: FieldDecision | None = None
    status: OutcomeStatus | None = None
    message: str = ""
    warnings: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    ocr_ms: float | None = None
    update_ms: float | None = None
    failure_category: str = ""

    def to_outcome(self, processing_time_ms: float) -> DocumentOutcome:
        decision = self.decision
        applied = decision.fields if decision and self.status is OutcomeStatus.UPDATED else {}
        return DocumentOutcome(
            document_id=self.document_id,
            status=self.status or OutcomeStatus.NO_CHANGES,
            message=self.message,
            detected_fields=self.report.facts if self.report else None,
            applied_fields=dict(applied),
            skipped_fields=decision.skipped_fields if decision else (),
            warnings=tuple(self.warnings),
            errors=tuple(self.errors),
            processing_time_ms=processing_time_ms,
        )


class PipelineStep(ABC):
    @abstractmethod
    def run(self, context: DocumentContext) -> DocumentContext:
        raise NotImplementedError
