from datetime import UTC, datetime

import pytest

from fiscal_indexer.processor.exceptions import InvalidBulkRequestError
from fiscal_indexer.processor.models import (
    BatchResult,
    BulkUpdateRequest,
    DocumentOutcome,
    OutcomeStatus,
)


def _make_result() -> BatchResult:
    return BatchResult(
        batch_id="batch_20250411_103000_abcdef12",
        start_time=datetime(2025, 4, 11, 10, 30, tzinfo=UTC),
        dry_run=True,
        only_update_empty_fields=True,
        cabinet_id="cab",
        language="spa+eng",
    )


class TestBulkUpdateRequest:
    def test_defaults_are_safe(self) -> None:
        request = BulkUpdateRequest(document_count=5, cabinet_id="cab")
        assert request.dry_run is True
        assert request.only_update_empty_fields is True

    @pytest.mark.parametrize("count", [0, -1, 1001])
    def test_rejects_out_of_range_counts(self, count: int) -> None:
        with pytest.raises(InvalidBulkRequestError, match="between 1 and 1000"):
            BulkUpdateRequest(document_count=count, cabinet_id="cab")

    def test_invalid_request_is_a_value_error(self) -> None:
        with pytest.raises(ValueError):
            BulkUpdateRequest(document_count=0, cabinet_id="cab")

    @pytest.mark.parametrize("count", [1, 1000])
    def test_accepts_bounds(self, count: int) -> None:
        assert BulkUpdateRequest(document_count=count, cabinet_id="cab").document_count == count


class TestBatchResult:
    def test_record_updates_counters(self) -> None:
        result = _make_result()
        result.record(DocumentOutcome(document_id=1, status=OutcomeStatus.UPDATED))
        result.record(DocumentOutcome(document_id=2, status=OutcomeStatus.FAILED, errors=("boom",)))
        result.record(DocumentOutcome(document_id=3, status=OutcomeStatus.SKIPPED))
        result.record(DocumentOutcome(document_id=4, status=OutcomeStatus.NO_CHANGES))

        assert result.total_processed == 4
        assert (result.updated, result.failed, result.skipped) == (1, 1, 2)
        assert result.errors == ["Document 2: boom"]
        assert [d.document_id for d in result.details] == [1, 2, 3, 4]
        assert result.success_rate == pytest.approx(25.0)

    def test_issue_stats_start_at_zero(self) -> None:
        result = _make_result()
        assert set(result.issue_stats.values()) == {0}
        result.count_issue("ocr_failures")
        assert result.issue_stats["ocr_failures"] == 1

    def test_success_rate_without_documents(self) -> None:
        assert _make_result().success_rate == 0.0
