from abc import ABC, abstractmethod
from collections.abc import Mapping

from fiscal_indexer.repository.models import DocumentContent


class BaseDocumentRepository(ABC):
    """Contract for the external document store holding the invoices."""

    @abstractmethod
    def list_recent_document_ids(self, cabinet_id: str, count: int) -> list[int]:
        """Return up to ``count`` document ids, most recently stored first."""

    @abstractmethod
    def get_document_content(self, document_id: int, cabinet_id: str) -> DocumentContent:
        """Download the document file."""

    @abstractmethod
    def get_index_fields(self, document_id: int, cabinet_id: str) -> dict[str, str | None]:
        """Return the document's current index values keyed by field name."""

    @abstractmethod
    def write_index_fields(
        self, document_id: int, cabinet_id: str, fields: Mapping[str, str]
    ) -> None:
        """Overwrite the given index fields.

        Raises:
            RepositoryWriteError: if the store rejects the update.
        """
