from dataclasses import asdict, dataclass

from fiscal_indexer.detection.patterns import complete_type_pair


@dataclass(frozen=True)
class DetectionCandidate:
    """A type letter/code pair proposed by one classification strategy."""

    strategy: str
    letter: str
    code: str
    tier: int
    confidence: float


@dataclass(frozen=True)
class FieldMatch:
    """A single extracted field value and how it was found."""

    value: str
    confidence: float
    pattern: str
    needs_review: bool = False


@dataclass(frozen=True)
class FieldRejection:
    """A well-formed value discarded by a validation rule."""

    value: str
    reason: str


@dataclass(frozen=True)
class InvoiceFacts:
    """Fiscal fields detected on one invoice.

    Type letter and code are kept consistent: setting only one of them fills
    the other. Per-field confidences are None for fields not detected.
    """

    tipo_factura: str | None = None
    codigo_factura: str | None = None
    nro_factura: str | None = None
    fecha_factura: str | None = None
    cuit_cliente: str | None = None
    confianza: float = 0.0
    requires_manual_review: bool = False
    type_confidence: float | None = None
    number_confidence: float | None = None
    date_confidence: float | None = None
    cuit_confidence: float | None = None

    def __post_init__(self) -> None:
        letter, code = complete_type_pair(self.tipo_factura, self.codigo_factura)
        object.__setattr__(self, "tipo_factura", letter)
        object.__setattr__(self, "codigo_factura", code)

    @property
    def detected_field_count(self) -> int:
        values = (
            self.tipo_factura,
            self.codigo_factura,
            self.nro_factura,
            self.fecha_factura,
            self.cuit_cliente,
        )
        return sum(1 for value in values if value)

    def as_dict(self) -> dict[str, object]:
        return asdict(self)


@dataclass(frozen=True)
class AnalysisReport:
    """Facts detected in a text plus the warnings raised while detecting them."""

    facts: InvoiceFacts
    warnings: tuple[str, ...] = ()
    conflicting_types: tuple[str, ...] = ()
    cuit_needs_review: bool = False
    rejected_dates: tuple[FieldRejection, ...] = ()

    @property
    def ambiguous(self) -> bool:
        return bool(self.conflicting_types)
