from fiscal_indexer.detection.analyzer import InvoiceAnalyzer
from fiscal_indexer.detection.classifier import (
    BaseTypeClassifier,
    TieredTypeClassifier,
    UniqueTypeClassifier,
)
from fiscal_indexer.detection.confidence import aggregate
from fiscal_indexer.detection.models import AnalysisReport, FieldRejection, InvoiceFacts

__all__ = [
    "AnalysisReport",
    "BaseTypeClassifier",
    "FieldRejection",
    "InvoiceAnalyzer",
    "InvoiceFacts",
    "TieredTypeClassifier",
    "UniqueTypeClassifier",
    "aggregate",
]
