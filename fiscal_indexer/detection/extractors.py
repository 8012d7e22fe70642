import re
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterator
from datetime import date, datetime

from fiscal_indexer.detection.models import FieldMatch, FieldRejection
from fiscal_indexer.detection.patterns import REGISTRY, FieldPattern
from fiscal_indexer.logging.logger import Log

_WHITESPACE = re.compile(r"\s+")
_NON_DIGIT = re.compile(r"\D")

INVOICE_NUMBER_SHAPE = re.compile(r"^\d{5}-\d{7,8}$")
CUIT_SHAPE = re.compile(r"^\d{2}-\d{8}-\d$")
EARLIEST_INVOICE_DATE = date(2020, 1, 1)


class BaseFieldExtractor(ABC):
    """Contract for single-field extractors."""

    @abstractmethod
    def extract(self, text: str) -> FieldMatch | None:
        """Return the chosen value for this field, or None when not found."""

    def rejected(self, text: str) -> tuple[FieldRejection, ...]:
        """Well-formed values refused by this field's validation rule."""
        return ()


class InvoiceNumberExtractor(BaseFieldExtractor):
    """Point-of-sale + sequence number, e.g. ``00723-0019175``.

    Patterns are tried in order and the first one yielding a well-shaped value
    wins; matches from different patterns are never ranked against each other.
    """

    def __init__(self, patterns: tuple[FieldPattern, ...] = REGISTRY.invoice_number) -> None:
        self._patterns = patterns

    def extract(self, text: str) -> FieldMatch | None:
        for field_pattern in self._patterns:
            for match in field_pattern.pattern.finditer(text):
                value = _WHITESPACE.sub("", match.group(1))
                if INVOICE_NUMBER_SHAPE.match(value):
                    return FieldMatch(value, field_pattern.confidence, field_pattern.name)
        return None


def one_year_after(day: date) -> date:
    try:
        return day.replace(year=day.year + 1)
    except ValueError:
        # 29 February
        return day.replace(year=day.year + 1, day=28)


class InvoiceDateExtractor(BaseFieldExtractor):
    """Issue date, returned as ``dd/mm/yyyy``.

    Candidates that do not parse, or fall outside
    [2020-01-01, today + 1 year], are skipped and scanning continues.
    ``rejected`` lists the out-of-window dates that were skipped.
    """

    def __init__(
        self,
        patterns: tuple[FieldPattern, ...] = REGISTRY.invoice_date,
        today: Callable[[], date] = date.today,
    ) -> None:
        self._patterns = patterns
        self._today = today

    def extract(self, text: str) -> FieldMatch | None:
        latest = one_year_after(self._today())
        for field_pattern, parsed in self._candidates(text):
            if not EARLIEST_INVOICE_DATE <= parsed <= latest:
                Log.debug(f"Discarding out-of-range invoice date {parsed:%d/%m/%Y}")
                continue
            return FieldMatch(
                parsed.strftime("%d/%m/%Y"), field_pattern.confidence, field_pattern.name
            )
        return None

    def rejected(self, text: str) -> tuple[FieldRejection, ...]:
        latest = one_year_after(self._today())
        reason = f"outside {EARLIEST_INVOICE_DATE:%d/%m/%Y} to {latest:%d/%m/%Y}"
        found: dict[str, FieldRejection] = {}
        for _field_pattern, parsed in self._candidates(text):
            value = parsed.strftime("%d/%m/%Y")
            if not EARLIEST_INVOICE_DATE <= parsed <= latest and value not in found:
                found[value] = FieldRejection(value, reason)
        return tuple(found.values())

    def _candidates(self, text: str) -> Iterator[tuple[FieldPattern, date]]:
        """Every parseable date, pattern by pattern, in scan order."""
        for field_pattern in self._patterns:
            for match in field_pattern.pattern.finditer(text):
                raw = _WHITESPACE.sub("", match.group(1))
                try:
                    parsed = datetime.strptime(raw, field_pattern.date_format).date()
                except ValueError:
                    continue
                yield field_pattern, parsed


def normalize_cuit(raw: str) -> str:
    """Canonical ``dd-dddddddd-d`` form when the token holds 11 digits."""
    digits = _NON_DIGIT.sub("", raw)
    if len(digits) == 11:
        return f"{digits[:2]}-{digits[2:10]}-{digits[10]}"
    return raw.strip()


class ClientCuitExtractor(BaseFieldExtractor):
    """Client tax id.

    Invoices print the issuer's CUIT first, so with two or more distinct ids
    the second one in document order is the client. A lone id is returned
    with a confidence penalty and flagged for review.
    """

    SINGLE_ID_PENALTY = 0.2
    SINGLE_ID_FLOOR = 0.5

    def __init__(self, patterns: tuple[FieldPattern, ...] = REGISTRY.client_cuit) -> None:
        self._patterns = patterns

    def find_all(self, text: str) -> list[FieldMatch]:
        """Distinct valid ids in order of first appearance in the text.

        An id matched by several patterns keeps the highest confidence.
        """
        found: dict[str, tuple[int, FieldMatch]] = {}
        for field_pattern in self._patterns:
            for match in field_pattern.pattern.finditer(text):
                value = normalize_cuit(match.group(1))
                if not CUIT_SHAPE.match(value):
                    continue
                position = match.start(1)
                candidate = FieldMatch(value, field_pattern.confidence, field_pattern.name)
                previous = found.get(value)
                if previous is None:
                    found[value] = (position, candidate)
                    continue
                first_seen = min(previous[0], position)
                best = candidate if candidate.confidence > previous[1].confidence else previous[1]
                found[value] = (first_seen, best)
        return [entry[1] for entry in sorted(found.values(), key=lambda entry: entry[0])]

    def extract(self, text: str) -> FieldMatch | None:
        candidates = self.find_all(text)
        if not candidates:
            return None
        if len(candidates) >= 2:
            return candidates[1]
        only = candidates[0]
        return FieldMatch(
            value=only.value,
            confidence=max(only.confidence - self.SINGLE_ID_PENALTY, self.SINGLE_ID_FLOOR),
            pattern=f"{only.pattern}_only_one",
            needs_review=True,
        )
