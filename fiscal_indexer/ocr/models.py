from dataclasses import dataclass


@dataclass(frozen=True)
class OcrResult:
    """Text read from the first page of a document."""

    text: str
    confidence: float
    language: str
    page_count: int = 1


@dataclass(frozen=True)
class RawDocumentText:
    """OCR output bound to the repository document it came from."""

    document_id: int
    text: str
    ocr_confidence: float
    language: str
    page_count: int

    @classmethod
    def from_result(cls, document_id: int, result: OcrResult) -> "RawDocumentText":
        return cls(
            document_id=document_id,
            text=result.text,
            ocr_confidence=result.confidence,
            language=result.language,
            page_count=result.page_count,
        )
