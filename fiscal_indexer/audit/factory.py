from fiscal_indexer.audit.base import BaseAuditSink, NullAuditSink
from fiscal_indexer.audit.csv_sink import CsvAuditSink
from fiscal_indexer.config.settings import Settings


class AuditSinkFactory:
    """Creates the audit sink configured in settings."""

    @classmethod
    def create(cls, settings: Settings) -> BaseAuditSink:
        if not settings.audit_enabled:
            return NullAuditSink()
        return CsvAuditSink(
            directory=settings.audit_directory,
            max_file_size_mb=settings.audit_max_file_size_mb,
            retention_days=settings.audit_retention_days,
        )
