from fiscal_indexer.config.settings import Settings
from fiscal_indexer.ocr.base import BaseOcrEngine
from fiscal_indexer.ocr.pdfplumber_adapter import PdfPlumberTextEngine
from fiscal_indexer.ocr.tesseract_adapter import TesseractOcrEngine


class OcrEngineFactory:
    """Creates the OCR engine selected in settings."""

    ENGINES: tuple[str, ...] = ("tesseract", "pdfplumber")

    @classmethod
    def create(cls, settings: Settings) -> BaseOcrEngine:
        engine = settings.ocr_engine.lower()
        if engine == "tesseract":
            return TesseractOcrEngine(
                default_language=settings.ocr_language,
                dpi=settings.ocr_dpi,
                tesseract_cmd=settings.tesseract_cmd,
            )
        if engine == "pdfplumber":
            return PdfPlumberTextEngine(default_language=settings.ocr_language)
        raise ValueError(f"Unknown OCR engine '{engine}'. Choose from: {list(cls.ENGINES)}")
