import io

import pymupdf
import pytesseract
from PIL import Image

from fiscal_indexer.ocr.base import BaseOcrEngine, is_pdf
from fiscal_indexer.ocr.exceptions import OcrError
from fiscal_indexer.ocr.models import OcrResult


class TesseractOcrEngine(BaseOcrEngine):
    """OCR via Tesseract; for PDFs only page one is rasterised, with PyMuPDF."""

    def __init__(
        self,
        default_language: str = "spa+eng",
        dpi: int = 300,
        tesseract_cmd: str = "",
    ) -> None:
        self._default_language = default_language
        self._dpi = dpi
        if tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = tesseract_cmd

    def extract_text(self, content: bytes, language: str | None = None) -> OcrResult:
        lang = language or self._default_language
        try:
            image, page_count = self._first_page_image(content)
            text = pytesseract.image_to_string(image, lang=lang)
            data = pytesseract.image_to_data(
                image, lang=lang, output_type=pytesseract.Output.DICT
            )
        except OcrError:
            raise
        except Exception as exc:
            raise OcrError(f"tesseract extraction failed: {exc}") from exc
        return OcrResult(
            text=text.strip(),
            confidence=_mean_word_confidence(data.get("conf", [])),
            language=lang,
            page_count=page_count,
        )

    def _first_page_image(self, content: bytes) -> tuple[Image.Image, int]:
        if not is_pdf(content):
            image = Image.open(io.BytesIO(content))
            image.load()
            return image, 1
        with pymupdf.open(stream=content, filetype="pdf") as doc:  # type: ignore[no-untyped-call]
            if doc.page_count == 0:
                raise OcrError("PDF has no pages")
            pixmap = doc[0].get_pixmap(dpi=self._dpi)
            png = pixmap.tobytes("png")
            page_count = doc.page_count
        image = Image.open(io.BytesIO(png))
        image.load()
        return image, page_count


def _mean_word_confidence(values: list[object]) -> float:
    scores: list[float] = []
    for value in values:
        try:
            score = float(str(value))
        except ValueError:
            continue
        # -1 marks layout blocks without text
        if score >= 0:
            scores.append(score)
    return sum(scores) / len(scores) if scores else 0.0
