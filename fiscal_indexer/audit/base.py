from abc import ABC, abstractmethod
from collections.abc import Mapping


class BaseAuditSink(ABC):
    """Receives issue records for later manual review.

    Implementations are best-effort: ``append_record`` must never raise.
    """

    @abstractmethod
    def append_record(self, category: str, fields: Mapping[str, object]) -> None:
        raise NotImplementedError

    def statistics(self) -> dict[str, object]:
        return {}


class NullAuditSink(BaseAuditSink):
    """Drops every record; used when auditing is disabled."""

    def append_record(self, category: str, fields: Mapping[str, object]) -> None:
        return None
