"""Decides which detected values are written back to a document.

Every value is re-checked against its expected shape before it is allowed
into the update set. With ``only_update_empty_fields`` the caller passes the
document's current index values and only blank or placeholder fields are
filled.
"""

from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime

from fiscal_indexer.detection.extractors import CUIT_SHAPE, INVOICE_NUMBER_SHAPE
from fiscal_indexer.detection.models import InvoiceFacts
from fiscal_indexer.detection.patterns import CODE_TYPES, TYPE_CODES
from fiscal_indexer.logging.logger import Log

LETTER_FIELD = "LETRA"
CODE_FIELD = "CODIGO"
NUMBER_FIELD = "NDEG_FACTURA"
DATE_FIELD = "DATE"
CUIT_FIELD = "CUIT_CLIENTE"

DEFAULT_EMPTY_VALUES: tuple[str, ...] = ("--", "", "N/A", "NULL", "null", "undefined")


def _is_date(value: str) -> bool:
    try:
        datetime.strptime(value, "%d/%m/%Y")
    except ValueError:
        return False
    return True


# (index field, facts attribute, validator, expected format)
_FIELD_RULES: tuple[tuple[str, str, Callable[[str], bool], str], ...] = (
    (LETTER_FIELD, "tipo_factura", lambda value: value in TYPE_CODES, "A, B or E"),
    (CODE_FIELD, "codigo_factura", lambda value: value in CODE_TYPES, "001, 006 or 019"),
    (NUMBER_FIELD, "nro_factura", lambda value: bool(INVOICE_NUMBER_SHAPE.match(value)),
     "XXXXX-XXXXXXX or XXXXX-XXXXXXXX"),
    (DATE_FIELD, "fecha_factura", _is_date, "dd/mm/yyyy"),
    (CUIT_FIELD, "cuit_cliente", lambda value: bool(CUIT_SHAPE.match(value)), "XX-XXXXXXXX-X"),
)


@dataclass(frozen=True)
class FieldIssue:
    field_name: str
    detected_value: str
    error: str
    expected_format: str


@dataclass(frozen=True)
class FieldDecision:
    fields: Mapping[str, str]
    issues: tuple[FieldIssue, ...] = ()
    withheld: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()

    @property
    def skipped_fields(self) -> tuple[str, ...]:
        return tuple(issue.field_name for issue in self.issues) + self.withheld


class FieldPolicy:
    def __init__(
        self,
        empty_values: Iterable[str] = DEFAULT_EMPTY_VALUES,
        treat_placeholders_as_empty: bool = True,
        log_placeholder_replacements: bool = True,
    ) -> None:
        self._placeholders = frozenset(value.strip().casefold() for value in empty_values)
        self._treat_placeholders_as_empty = treat_placeholders_as_empty
        self._log_replacements = log_placeholder_replacements

    def is_empty(self, value: str | None) -> bool:
        if value is None or not value.strip():
            return True
        return self._treat_placeholders_as_empty and value.strip().casefold() in self._placeholders

    def decide(
        self,
        document_id: int,
        facts: InvoiceFacts,
        current: Mapping[str, str | None] | None = None,
    ) -> FieldDecision:
        """Build the update set for one document.

        ``current`` is None when fields may be overwritten unconditionally.
        """
        fields: dict[str, str] = {}
        issues: list[FieldIssue] = []
        withheld: list[str] = []
        warnings: list[str] = []
        for field_name, attribute, is_valid, expected in _FIELD_RULES:
            value = getattr(facts, attribute)
            if not value:
                continue
            if not is_valid(value):
                issues.append(FieldIssue(field_name, value, "invalid format", expected))
                warnings.append(f"{field_name} discarded: '{value}' does not match {expected}")
                continue
            if current is not None:
                existing = current.get(field_name)
                if not self.is_empty(existing):
                    withheld.append(field_name)
                    warnings.append(
                        f"{field_name} skipped: field already holds '{existing}' "
                        "and only empty fields are updated"
                    )
                    continue
                if existing and existing.strip() and self._log_replacements:
                    Log.info(
                        f"Document {document_id}: replacing placeholder '{existing}' "
                        f"in {field_name} with '{value}'"
                    )
            fields[field_name] = value
        return FieldDecision(
            fields=fields,
            issues=tuple(issues),
            withheld=tuple(withheld),
            warnings=tuple(warnings),
        )
