class ProcessorError(Exception):
    """Base exception for all processor-related errors."""


class InvalidBulkRequestError(ProcessorError, ValueError):
    """Raised when a bulk request is outside the accepted bounds."""


class ResolutionError(ProcessorError):
    """Raised when the batch's document ids cannot be obtained."""


class ExtractionError(ProcessorError):
    """Raised when OCR produced no usable text for a document."""


class ClassificationAmbiguousError(ProcessorError):
    """Raised when type signals conflict and no other field was detected."""
