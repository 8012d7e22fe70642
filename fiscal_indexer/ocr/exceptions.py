class OcrError(Exception):
    """Raised when an OCR engine cannot produce text for a document."""
