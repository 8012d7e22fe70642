"""Flat-file audit trail: one CSV per record category.

Each category file gets a fixed header. When a file reaches the configured
size it is renamed to ``<category>_<YYYYmmdd_HHMMSS>.csv`` and a fresh file
is started. Files older than the retention window are deleted when the sink
starts and after every rotation.
"""

import csv
import threading
from collections.abc import Callable, Mapping
from datetime import UTC, datetime, timedelta
from pathlib import Path
from types import MappingProxyType

from fiscal_indexer.audit.base import BaseAuditSink
from fiscal_indexer.logging.logger import Log

CUIT_ISSUES = "cuit_issues"
VALIDATION_ISSUES = "validation_issues"
OCR_FAILURES = "ocr_failures"
REPOSITORY_FAILURES = "repository_failures"
BATCH_SUMMARIES = "batch_summaries"

AUDIT_COLUMNS: Mapping[str, tuple[str, ...]] = MappingProxyType(
    {
        CUIT_ISSUES: (
            "timestamp", "document_id", "found_cuit", "issue_type", "details", "requires_review",
        ),
        VALIDATION_ISSUES: (
            "timestamp", "document_id", "field_name", "detected_value",
            "validation_error", "expected_format", "requires_review",
        ),
        OCR_FAILURES: (
            "timestamp", "document_id", "error_message", "partial_ocr_text",
            "requires_manual_review",
        ),
        REPOSITORY_FAILURES: (
            "timestamp", "document_id", "error_message", "fields_to_update",
            "requires_manual_update",
        ),
        BATCH_SUMMARIES: (
            "timestamp", "batch_id", "total_processed", "updated", "failed", "skipped",
            "success_rate", "cuit_issues", "validation_issues", "ocr_failures",
            "repository_failures",
        ),
    }
)

_MAX_COLUMN_LENGTH: Mapping[str, int] = MappingProxyType({"partial_ocr_text": 500})
_TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"
_ROTATION_FORMAT = "%Y%m%d_%H%M%S"


def _utcnow() -> datetime:
    return datetime.now(UTC)


class CsvAuditSink(BaseAuditSink):
    def __init__(
        self,
        directory: str | Path,
        max_file_size_mb: float = 10,
        retention_days: int = 30,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._directory = Path(directory)
        self._max_bytes = int(max_file_size_mb * 1024 * 1024)
        self._retention = timedelta(days=retention_days)
        self._clock = clock
        self._lock = threading.Lock()
        try:
            self._directory.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            Log.error(f"Cannot create audit directory {self._directory}: {exc}")
        self.cleanup_expired()

    def path_for(self, category: str) -> Path:
        return self._directory / f"{category}.csv"

    def append_record(self, category: str, fields: Mapping[str, object]) -> None:
        try:
            with self._lock:
                self._append(category, fields)
        except Exception as exc:  # noqa: BLE001
            Log.error(f"Audit record for '{category}' dropped: {exc}")

    def cleanup_expired(self) -> int:
        """Delete CSV files older than the retention window; returns the count."""
        cutoff = self._clock() - self._retention
        removed = 0
        try:
            for path in self._directory.glob("*.csv"):
                modified = datetime.fromtimestamp(path.stat().st_mtime, UTC)
                if modified < cutoff:
                    path.unlink()
                    removed += 1
        except OSError as exc:
            Log.error(f"Audit retention cleanup failed: {exc}")
        if removed:
            Log.info(f"Removed {removed} expired audit files from {self._directory}")
        return removed

    def statistics(self) -> dict[str, object]:
        try:
            files = {path.name: path.stat().st_size for path in sorted(self._directory.glob("*.csv"))}
        except OSError as exc:
            Log.error(f"Cannot read audit statistics: {exc}")
            return {}
        return {
            "directory": str(self._directory),
            "file_count": len(files),
            "total_size_bytes": sum(files.values()),
            "files": files,
        }

    def _append(self, category: str, fields: Mapping[str, object]) -> None:
        path = self.path_for(category)
        columns = AUDIT_COLUMNS.get(category) or ("timestamp", *fields)
        if path.exists() and path.stat().st_size >= self._max_bytes:
            self._rotate(path, category)
        row = [self._clock().strftime(_TIMESTAMP_FORMAT)]
        for column in columns[1:]:
            value = "" if fields.get(column) is None else str(fields.get(column))
            limit = _MAX_COLUMN_LENGTH.get(column)
            row.append(value[:limit] if limit else value)
        write_header = not path.exists()
        with path.open("a", newline="", encoding="utf-8") as handle:
            writer = csv.writer(handle)
            if write_header:
                writer.writerow(columns)
            writer.writerow(row)

    def _rotate(self, path: Path, category: str) -> None:
        stamp = self._clock().strftime(_ROTATION_FORMAT)
        target = self._directory / f"{category}_{stamp}.csv"
        suffix = 1
        while target.exists():
            target = self._directory / f"{category}_{stamp}_{suffix}.csv"
            suffix += 1
        path.rename(target)
        Log.info(f"Rotated audit file {path.name} to {target.name}")
        self.cleanup_expired()
