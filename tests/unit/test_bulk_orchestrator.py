import re
from collections.abc import Callable
from unittest.mock import MagicMock

import pytest

from fiscal_indexer.audit.base import BaseAuditSink
from fiscal_indexer.audit.csv_sink import (
    BATCH_SUMMARIES,
    CUIT_ISSUES,
    OCR_FAILURES,
    REPOSITORY_FAILURES,
    VALIDATION_ISSUES,
)
from fiscal_indexer.detection.analyzer import InvoiceAnalyzer
from fiscal_indexer.detection.classifier import UniqueTypeClassifier
from fiscal_indexer.ocr.base import BaseOcrEngine
from fiscal_indexer.ocr.exceptions import OcrError
from fiscal_indexer.ocr.models import OcrResult
from fiscal_indexer.processor.field_policy import FieldPolicy
from fiscal_indexer.processor.models import BulkUpdateRequest, OutcomeStatus
from fiscal_indexer.processor.orchestrator import BulkOrchestrator, new_batch_id
from fiscal_indexer.processor.steps import (
    AnalyzeStep,
    ApplyUpdateStep,
    DecideFieldsStep,
    FetchContentStep,
    RunOcrStep,
)
from fiscal_indexer.repository.base import BaseDocumentRepository
from fiscal_indexer.repository.exceptions import RepositoryError, RepositoryWriteError
from fiscal_indexer.repository.models import DocumentContent

INVOICE_TEXT = (
    "GRUPO A FACTURA\n"
    "CODIGO N° 001\n"
    "N° 00723-0019175\n"
    "Fecha: 11/04/2025\n"
    "Emisor CUIT 30-12345678-9\n"
    "Cliente CUIT 20-98765432-1\n"
)

EXPECTED_FIELDS = {
    "LETRA": "A",
    "CODIGO": "001",
    "NDEG_FACTURA": "00723-0019175",
    "DATE": "11/04/2025",
    "CUIT_CLIENTE": "20-98765432-1",
}


def _text_for(texts: dict[int, str]) -> Callable[[bytes, str], OcrResult]:
    """OCR double: the document id is encoded in the fake content."""

    def extract_text(content: bytes, language: str) -> OcrResult:
        document_id = int(content.decode().split("-")[1])
        text = texts.get(document_id, INVOICE_TEXT)
        if text == "raise":
            raise OcrError(f"scan {document_id} unreadable")
        return OcrResult(text=text, confidence=91.0, language=language)

    return extract_text


def _make_orchestrator(
    document_ids: tuple[int, ...] = (1, 2, 3, 4, 5),
    texts: dict[int, str] | None = None,
    current_fields: dict[str, str | None] | None = None,
    max_document_limit: int = 1000,
) -> tuple[BulkOrchestrator, MagicMock, MagicMock, MagicMock]:
    repository = MagicMock(spec=BaseDocumentRepository)
    repository.list_recent_document_ids.return_value = list(document_ids)
    repository.get_document_content.side_effect = lambda document_id, _cabinet: DocumentContent(
        f"%PDF-{document_id}".encode(), "application/pdf"
    )
    repository.get_index_fields.return_value = current_fields or {}
    ocr_engine = MagicMock(spec=BaseOcrEngine)
    ocr_engine.extract_text.side_effect = _text_for(texts or {})
    audit_sink = MagicMock(spec=BaseAuditSink)

    steps = [
        FetchContentStep(repository),
        RunOcrStep(ocr_engine),
        AnalyzeStep(InvoiceAnalyzer(UniqueTypeClassifier())),
        DecideFieldsStep(FieldPolicy(), repository),
        ApplyUpdateStep(repository),
    ]
    orchestrator = BulkOrchestrator(
        repository=repository,
        steps=steps,
        audit_sink=audit_sink,
        max_document_limit=max_document_limit,
    )
    return orchestrator, repository, ocr_engine, audit_sink


def _request(count: int = 5, dry_run: bool = True, only_empty: bool = True) -> BulkUpdateRequest:
    return BulkUpdateRequest(
        document_count=count,
        cabinet_id="cab-1",
        dry_run=dry_run,
        only_update_empty_fields=only_empty,
    )


def _audit_categories(audit_sink: MagicMock) -> list[str]:
    return [c.args[0] for c in audit_sink.append_record.call_args_list]


class TestPartialFailureIsolation:
    def test_ocr_failure_on_third_document(self) -> None:
        orchestrator, repository, _ocr, audit_sink = _make_orchestrator(texts={3: "raise"})

        result = orchestrator.run(_request(5, dry_run=True))

        assert result.success is True
        assert result.total_processed == 5
        assert result.failed == 1
        assert [d.document_id for d in result.details] == [1, 2, 3, 4, 5]
        assert result.details[2].status is OutcomeStatus.FAILED
        assert "scan 3 unreadable" in result.details[2].errors[0]
        for index in (0, 1, 3, 4):
            assert result.details[index].status is OutcomeStatus.UPDATED
            assert result.details[index].errors == ()
        assert result.issue_stats["ocr_failures"] == 1
        assert OCR_FAILURES in _audit_categories(audit_sink)
        repository.write_index_fields.assert_not_called()

    def test_other_outcomes_match_an_undisturbed_run(self) -> None:
        failing, *_ = _make_orchestrator(texts={3: "raise"})
        clean, *_ = _make_orchestrator()

        with_failure = failing.run(_request(5)).details
        without_failure = clean.run(_request(5)).details

        for index in (0, 1, 3, 4):
            assert with_failure[index].status == without_failure[index].status
            assert with_failure[index].detected_fields == without_failure[index].detected_fields

    def test_empty_ocr_text_fails_only_that_document(self) -> None:
        orchestrator, *_ = _make_orchestrator(document_ids=(1, 2), texts={1: "   "})
        result = orchestrator.run(_request(2))
        assert result.details[0].status is OutcomeStatus.FAILED
        assert "no text" in result.details[0].errors[0]
        assert result.details[1].status is OutcomeStatus.UPDATED

    def test_unexpected_error_is_contained(self) -> None:
        orchestrator, repository, *_ = _make_orchestrator(document_ids=(1, 2))
        repository.get_document_content.side_effect = [
            RuntimeError("socket closed"),
            DocumentContent(b"%PDF-2"),
        ]
        result = orchestrator.run(_request(2))
        assert [d.status for d in result.details] == [OutcomeStatus.FAILED, OutcomeStatus.UPDATED]


class TestDryRun:
    def test_reports_simulated_updates_without_writing(self) -> None:
        orchestrator, repository, *_ = _make_orchestrator(document_ids=(1, 2))

        result = orchestrator.run(_request(2, dry_run=True))

        repository.write_index_fields.assert_not_called()
        assert result.updated == 2
        assert result.details[0].message == "DRY-RUN: 5 fields would be updated"
        assert dict(result.details[0].applied_fields) == EXPECTED_FIELDS
        assert result.performance.avg_update_ms == 0.0

    def test_detects_the_same_fields_as_a_live_run(self) -> None:
        dry, *_ = _make_orchestrator(document_ids=(1, 2))
        live, *_ = _make_orchestrator(document_ids=(1, 2))

        dry_details = dry.run(_request(2, dry_run=True)).details
        live_details = live.run(_request(2, dry_run=False)).details

        assert [d.detected_fields for d in dry_details] == [
            d.detected_fields for d in live_details
        ]

    def test_nothing_detected_is_no_changes(self) -> None:
        orchestrator, *_ = _make_orchestrator(document_ids=(1,), texts={1: "Remito interno"})
        result = orchestrator.run(_request(1))
        assert result.details[0].status is OutcomeStatus.NO_CHANGES
        assert result.skipped == 1


class TestLiveRun:
    def test_writes_detected_fields(self) -> None:
        orchestrator, repository, *_ = _make_orchestrator(document_ids=(7, 8))

        result = orchestrator.run(_request(2, dry_run=False, only_empty=False))

        assert repository.write_index_fields.call_count == 2
        repository.write_index_fields.assert_any_call(7, "cab-1", EXPECTED_FIELDS)
        repository.get_index_fields.assert_not_called()
        assert result.updated == 2
        assert result.performance.total_update_ms >= 0.0

    def test_reads_current_values_before_writing_only_blanks(self) -> None:
        orchestrator, repository, *_ = _make_orchestrator(
            document_ids=(1,), current_fields={"LETRA": "A", "CODIGO": "001", "DATE": "--"}
        )

        result = orchestrator.run(_request(1, dry_run=False, only_empty=True))

        repository.get_index_fields.assert_called_once_with(1, "cab-1")
        written = repository.write_index_fields.call_args.args[2]
        assert set(written) == {"NDEG_FACTURA", "DATE", "CUIT_CLIENTE"}
        assert result.details[0].skipped_fields == ("LETRA", "CODIGO")

    def test_all_fields_already_filled_is_skipped(self) -> None:
        orchestrator, repository, *_ = _make_orchestrator(
            document_ids=(1,), current_fields=dict(EXPECTED_FIELDS)
        )

        result = orchestrator.run(_request(1, dry_run=False, only_empty=True))

        repository.write_index_fields.assert_not_called()
        assert result.details[0].status is OutcomeStatus.SKIPPED

    def test_write_failure_marks_only_that_document(self) -> None:
        orchestrator, repository, _ocr, audit_sink = _make_orchestrator(document_ids=(1, 2, 3))
        repository.write_index_fields.side_effect = [None, RepositoryWriteError("409"), None]

        result = orchestrator.run(_request(3, dry_run=False, only_empty=False))

        assert [d.status for d in result.details] == [
            OutcomeStatus.UPDATED,
            OutcomeStatus.FAILED,
            OutcomeStatus.UPDATED,
        ]
        assert result.issue_stats["repository_failures"] == 1
        assert REPOSITORY_FAILURES in _audit_categories(audit_sink)
        assert dict(result.details[1].applied_fields) == {}


class TestBatchLevelFailures:
    def test_listing_failure_aborts_the_batch(self) -> None:
        orchestrator, repository, *_ = _make_orchestrator()
        repository.list_recent_document_ids.side_effect = RepositoryError("cabinet offline")

        result = orchestrator.run(_request(5))

        assert result.success is False
        assert "cabinet offline" in result.message
        assert result.details == []
        repository.get_document_content.assert_not_called()

    def test_empty_listing_aborts_the_batch(self) -> None:
        orchestrator, repository, *_ = _make_orchestrator(document_ids=())
        result = orchestrator.run(_request(5))
        assert result.success is False
        assert "No documents found" in result.message

    def test_request_above_configured_limit(self) -> None:
        orchestrator, repository, _ocr, audit_sink = _make_orchestrator(max_document_limit=3)
        result = orchestrator.run(_request(5))
        assert result.success is False
        repository.list_recent_document_ids.assert_not_called()
        assert _audit_categories(audit_sink) == [BATCH_SUMMARIES]

    def test_fewer_documents_than_requested(self) -> None:
        orchestrator, *_ = _make_orchestrator(document_ids=(1, 2))
        result = orchestrator.run(_request(5))
        assert result.success is True
        assert result.total_processed == 2


class TestDocumentFindings:
    def test_ambiguous_type_without_other_fields_fails(self) -> None:
        orchestrator, _repo, _ocr, audit_sink = _make_orchestrator(
            document_ids=(1,), texts={1: "A CODIGO N° 001\nB CODIGO N° 006"}
        )
        result = orchestrator.run(_request(1))
        assert result.details[0].status is OutcomeStatus.FAILED
        assert "Conflicting invoice types A, B" in result.details[0].errors[0]
        assert result.issue_stats[OCR_FAILURES] == 0
        assert result.issue_stats[VALIDATION_ISSUES] == 1
        categories = _audit_categories(audit_sink)
        assert OCR_FAILURES not in categories
        assert categories[0] == VALIDATION_ISSUES
        record = audit_sink.append_record.call_args_list[0].args[1]
        assert record["field_name"] == "LETRA"
        assert record["detected_value"] == "A, B"

    def test_ambiguous_type_with_other_fields_is_a_warning(self) -> None:
        text = "A CODIGO N° 001\nB CODIGO N° 006\nN° 00723-0019175"
        orchestrator, _repo, _ocr, audit_sink = _make_orchestrator(document_ids=(1,), texts={1: text})
        result = orchestrator.run(_request(1))
        outcome = result.details[0]
        assert outcome.status is OutcomeStatus.UPDATED
        assert dict(outcome.applied_fields) == {"NDEG_FACTURA": "00723-0019175"}
        assert any(w.startswith("Conflicting") for w in outcome.warnings)
        records = [
            c.args[1] for c in audit_sink.append_record.call_args_list if c.args[0] == VALIDATION_ISSUES
        ]
        assert [r["field_name"] for r in records] == ["LETRA"]
        assert result.issue_stats[VALIDATION_ISSUES] == 1

    def test_out_of_window_date_is_reported_and_audited(self) -> None:
        text = "CODIGO N° 001\nN° 00723-0019175\nFecha: 11/04/2019\n"
        orchestrator, _repo, _ocr, audit_sink = _make_orchestrator(document_ids=(1,), texts={1: text})
        result = orchestrator.run(_request(1))
        outcome = result.details[0]
        assert outcome.status is OutcomeStatus.UPDATED
        assert "DATE" not in dict(outcome.applied_fields)
        assert any("11/04/2019" in w for w in outcome.warnings)
        records = [
            c.args[1] for c in audit_sink.append_record.call_args_list if c.args[0] == VALIDATION_ISSUES
        ]
        assert len(records) == 1
        assert records[0]["field_name"] == "DATE"
        assert records[0]["detected_value"] == "11/04/2019"
        assert "01/01/2020" in records[0]["validation_error"]
        assert result.issue_stats[VALIDATION_ISSUES] == 1

    def test_single_cuit_is_audited(self) -> None:
        text = "GRUPO A CODIGO N° 001\nCUIT 30-12345678-9"
        orchestrator, _repo, _ocr, audit_sink = _make_orchestrator(document_ids=(1,), texts={1: text})
        result = orchestrator.run(_request(1))
        assert result.issue_stats["cuit_issues"] == 1
        assert CUIT_ISSUES in _audit_categories(audit_sink)

    def test_type_e_is_counted(self) -> None:
        orchestrator, *_ = _make_orchestrator(document_ids=(1,), texts={1: "E\nCODIGO N° 019"})
        result = orchestrator.run(_request(1))
        assert result.issue_stats["type_e_detected"] == 1

    def test_placeholder_current_value_is_replaced(self) -> None:
        orchestrator, repository, *_ = _make_orchestrator(
            document_ids=(1,), current_fields={"CUIT_CLIENTE": "undefined"}
        )
        orchestrator.run(_request(1, dry_run=False))
        assert repository.write_index_fields.call_args.args[2]["CUIT_CLIENTE"] == "20-98765432-1"


class TestBatchAccounting:
    def test_summary_is_audited_last(self) -> None:
        orchestrator, _repo, _ocr, audit_sink = _make_orchestrator(document_ids=(1, 2))
        orchestrator.run(_request(2))
        assert _audit_categories(audit_sink)[-1] == BATCH_SUMMARIES

    def test_performance_statistics(self) -> None:
        orchestrator, *_ = _make_orchestrator(document_ids=(1, 2, 3))
        result = orchestrator.run(_request(3, dry_run=False, only_empty=False))
        assert result.performance.docs_per_second > 0
        assert result.performance.avg_ocr_ms >= 0
        assert result.performance.total_ocr_ms == pytest.approx(
            result.performance.avg_ocr_ms * 3
        )
        assert result.end_time is not None
        assert result.end_time >= result.start_time

    def test_result_echoes_request(self) -> None:
        orchestrator, *_ = _make_orchestrator(document_ids=(1,))
        result = orchestrator.run(_request(1, dry_run=False, only_empty=False))
        assert (result.dry_run, result.only_update_empty_fields) == (False, False)
        assert result.cabinet_id == "cab-1"
        assert "LIVE batch finished" in result.message

    def test_no_validation_issue_for_clean_documents(self) -> None:
        orchestrator, _repo, _ocr, audit_sink = _make_orchestrator(document_ids=(1,))
        orchestrator.run(_request(1))
        assert VALIDATION_ISSUES not in _audit_categories(audit_sink)

    def test_batch_id_format(self) -> None:
        from datetime import UTC, datetime

        batch_id = new_batch_id(datetime(2025, 4, 11, 10, 30, 5, tzinfo=UTC))
        assert re.fullmatch(r"batch_20250411_103005_[0-9a-f]{8}", batch_id)
