from statistics import fmean

from fiscal_indexer.detection.models import InvoiceFacts


def aggregate(facts: InvoiceFacts) -> float:
    """Mean confidence over the fields actually detected; 0.0 when none were.

    Type letter and code share a single confidence value.
    """
    scores = [
        score
        for score in (
            facts.type_confidence,
            facts.number_confidence,
            facts.date_confidence,
            facts.cuit_confidence,
        )
        if score is not None
    ]
    return fmean(scores) if scores else 0.0
