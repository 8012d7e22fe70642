from fiscal_indexer.config.settings import Settings
from fiscal_indexer.logging.logger import Log
from fiscal_indexer.processor.analysis_service import build_analysis_service
from fiscal_indexer.processor.models import BulkUpdateRequest
from fiscal_indexer.processor.orchestrator import build_orchestrator
from fiscal_indexer.repository.base import BaseDocumentRepository
from fiscal_indexer.repository.connection import ConnectionProvider
from fiscal_indexer.repository.docuware_repository import DocuWareRepository


def run_analysis(settings: Settings, repository: BaseDocumentRepository, document_id: int) -> bool:
    service = build_analysis_service(settings, repository)
    analysis = service.analyze_document(document_id)
    if analysis.facts is not None:
        Log.info(f"Document {document_id}: {analysis.facts.as_dict()}")
    for warning in analysis.warnings:
        Log.warning(warning)
    return analysis.success


def run_batch(settings: Settings, repository: BaseDocumentRepository) -> bool:
    orchestrator = build_orchestrator(settings, repository)
    request = BulkUpdateRequest(
        document_count=settings.bulk_document_count,
        cabinet_id=settings.docuware_cabinet_id,
        dry_run=settings.bulk_dry_run,
        only_update_empty_fields=settings.bulk_only_update_empty_fields,
        language=settings.ocr_language,
    )
    result = orchestrator.run(request)
    Log.info(
        f"Batch {result.batch_id}: success={result.success} "
        f"docs/s={result.performance.docs_per_second:.2f} "
        f"avg OCR={result.performance.avg_ocr_ms:.0f}ms "
        f"avg update={result.performance.avg_update_ms:.0f}ms"
    )
    return result.success


def main() -> None:
    """Entry point: open the repository session -> analyze one document or run a batch."""
    settings = Settings()
    Log.configure(settings.log_level)
    connection = ConnectionProvider(settings)

    try:
        repository = DocuWareRepository(connection)
        if settings.analyze_document_id is not None:
            succeeded = run_analysis(settings, repository, settings.analyze_document_id)
        else:
            succeeded = run_batch(settings, repository)
    finally:
        connection.close()
    if not succeeded:
        raise SystemExit(1)


if __name__ == "__main__":
    main()
