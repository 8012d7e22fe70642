from dataclasses import replace

from fiscal_indexer.detection.classifier import BaseTypeClassifier
from fiscal_indexer.detection.confidence import aggregate
from fiscal_indexer.detection.extractors import (
    BaseFieldExtractor,
    ClientCuitExtractor,
    InvoiceDateExtractor,
    InvoiceNumberExtractor,
)
from fiscal_indexer.detection.models import AnalysisReport, InvoiceFacts

MISSING_TYPE = "Could not detect the invoice type (A, B or E) nor its code (001, 006 or 019)"
AMBIGUOUS_TYPE = "Conflicting invoice type signals ({types}); manual review required"
MISSING_NUMBER = "Could not detect the invoice number in XXXXX-XXXXXXXX format"
MISSING_DATE = "Could not detect the invoice date"
MISSING_CUIT = "Could not detect the client CUIT (second CUIT on the document)"
SINGLE_CUIT = "Only one CUIT found ({cuit}); it may belong to the issuer"
DISCARDED_DATE = "Invoice date {value} discarded: {reason}"


class InvoiceAnalyzer:
    """Runs the type classifier and field extractors over one OCR text."""

    def __init__(
        self,
        classifier: BaseTypeClassifier,
        number_extractor: BaseFieldExtractor | None = None,
        date_extractor: BaseFieldExtractor | None = None,
        cuit_extractor: BaseFieldExtractor | None = None,
    ) -> None:
        self._classifier = classifier
        self._number_extractor = number_extractor or InvoiceNumberExtractor()
        self._date_extractor = date_extractor or InvoiceDateExtractor()
        self._cuit_extractor = cuit_extractor or ClientCuitExtractor()

    def analyze(self, text: str) -> AnalysisReport:
        detection = self._classifier.classify(text)
        conflicts = () if detection else self._classifier.conflicting_types(text)
        number = self._number_extractor.extract(text)
        invoice_date = self._date_extractor.extract(text)
        cuit = self._cuit_extractor.extract(text)
        rejected_dates = () if invoice_date else self._date_extractor.rejected(text)

        warnings: list[str] = []
        if detection is None:
            if conflicts:
                warnings.append(AMBIGUOUS_TYPE.format(types=", ".join(conflicts)))
            else:
                warnings.append(MISSING_TYPE)
        if number is None:
            warnings.append(MISSING_NUMBER)
        if invoice_date is None:
            warnings.append(MISSING_DATE)
        warnings.extend(
            DISCARDED_DATE.format(value=rejection.value, reason=rejection.reason)
            for rejection in rejected_dates
        )
        if cuit is None:
            warnings.append(MISSING_CUIT)
        elif cuit.needs_review:
            warnings.append(SINGLE_CUIT.format(cuit=cuit.value))

        facts = InvoiceFacts(
            tipo_factura=detection.letter if detection else None,
            codigo_factura=detection.code if detection else None,
            nro_factura=number.value if number else None,
            fecha_factura=invoice_date.value if invoice_date else None,
            cuit_cliente=cuit.value if cuit else None,
            requires_manual_review=detection is None or bool(cuit and cuit.needs_review),
            type_confidence=detection.confidence if detection else None,
            number_confidence=number.confidence if number else None,
            date_confidence=invoice_date.confidence if invoice_date else None,
            cuit_confidence=cuit.confidence if cuit else None,
        )
        facts = replace(facts, confianza=aggregate(facts))
        return AnalysisReport(
            facts=facts,
            warnings=tuple(warnings),
            conflicting_types=conflicts,
            cuit_needs_review=bool(cuit and cuit.needs_review),
            rejected_dates=rejected_dates,
        )
