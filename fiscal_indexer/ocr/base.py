from abc import ABC, abstractmethod

from fiscal_indexer.ocr.models import OcrResult

PDF_MAGIC = b"%PDF"


def is_pdf(content: bytes) -> bool:
    return content[:4] == PDF_MAGIC


class BaseOcrEngine(ABC):
    """Contract for all OCR adapters."""

    @abstractmethod
    def extract_text(self, content: bytes, language: str | None = None) -> OcrResult:
        """Read the text of the first page of a document.

        Only page one is processed; the fiscal type marker is always printed
        there, and skipping the rest keeps bulk runs fast.

        Args:
            content: Raw file content (PDF or image).
            language: Engine language code, e.g. ``spa+eng``. Falls back to
                the engine default when omitted.

        Raises:
            OcrError: if the content cannot be read for any reason.
        """
