from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from fiscal_indexer.detection.models import InvoiceFacts
from fiscal_indexer.processor.exceptions import InvalidBulkRequestError

MAX_DOCUMENT_COUNT = 1000

ISSUE_KEYS: tuple[str, ...] = (
    "cuit_issues",
    "validation_issues",
    "ocr_failures",
    "repository_failures",
    "type_e_detected",
)


class OutcomeStatus(str, Enum):
    UPDATED = "Updated"
    FAILED = "Failed"
    SKIPPED = "Skipped"
    NO_CHANGES = "NoChanges"


class DocumentState(str, Enum):
    """Intermediate states a document passes through before its outcome."""

    PENDING = "Pending"
    OCR_FAILED = "OcrFailed"
    EXTRACTION_INCOMPLETE = "ExtractionIncomplete"
    FIELDS_READY = "FieldsReady"


@dataclass(frozen=True)
class BulkUpdateRequest:
    document_count: int
    cabinet_id: str
    dry_run: bool = True
    only_update_empty_fields: bool = True
    language: str = "spa+eng"

    def __post_init__(self) -> None:
        if not 1 <= self.document_count <= MAX_DOCUMENT_COUNT:
            raise InvalidBulkRequestError(
                f"document_count must be between 1 and {MAX_DOCUMENT_COUNT}, "
                f"got {self.document_count}"
            )


@dataclass(frozen=True)
class DocumentOutcome:
    document_id: int
    status: OutcomeStatus
    message: str = ""
    detected_fields: InvoiceFacts | None = None
    applied_fields: Mapping[str, str] = field(default_factory=dict)
    skipped_fields: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()
    errors: tuple[str, ...] = ()
    processing_time_ms: float = 0.0


@dataclass(frozen=True)
class PerformanceStats:
    avg_ocr_ms: float = 0.0
    avg_update_ms: float = 0.0
    docs_per_second: float = 0.0
    total_ocr_ms: float = 0.0
    total_update_ms: float = 0.0


@dataclass
class BatchResult:
    """Running and final state of one bulk run.

    ``skipped`` counts both Skipped and NoChanges outcomes.
    """

    batch_id: str
    start_time: datetime
    dry_run: bool
    only_update_empty_fields: bool
    cabinet_id: str
    language: str
    success: bool = True
    message: str = ""
    end_time: datetime | None = None
    total_processed: int = 0
    updated: int = 0
    failed: int = 0
    skipped: int = 0
    details: list[DocumentOutcome] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    issue_stats: dict[str, int] = field(default_factory=lambda: dict.fromkeys(ISSUE_KEYS, 0))
    performance: PerformanceStats = field(default_factory=PerformanceStats)

    def record(self, outcome: DocumentOutcome) -> None:
        self.details.append(outcome)
        self.total_processed += 1
        if outcome.status is OutcomeStatus.UPDATED:
            self.updated += 1
        elif outcome.status is OutcomeStatus.FAILED:
            self.failed += 1
            self.errors.extend(f"Document {outcome.document_id}: {e}" for e in outcome.errors)
        else:
            self.skipped += 1

    def count_issue(self, key: str, amount: int = 1) -> None:
        self.issue_stats[key] = self.issue_stats.get(key, 0) + amount

    @property
    def success_rate(self) -> float:
        if not self.total_processed:
            return 0.0
        return self.updated / self.total_processed * 100
