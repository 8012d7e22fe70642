"""Compiled text patterns for Argentine invoice detection.

The registry is assembled once at import time and only exposes tuples and
read-only mappings, so it can be shared freely between detectors.

Type-letter patterns match upper case letters only; keywords and codes are
case-insensitive.
"""

import re
from collections.abc import Mapping
from dataclasses import dataclass
from types import MappingProxyType

TYPE_LETTERS: tuple[str, ...] = ("A", "B", "E")

TYPE_CODES: Mapping[str, str] = MappingProxyType({"A": "001", "B": "006", "E": "019"})
CODE_TYPES: Mapping[str, str] = MappingProxyType({code: letter for letter, code in TYPE_CODES.items()})

_FLAGS = re.IGNORECASE | re.MULTILINE

_CODE_KEYWORD = r"(?:c[oó]digo|cod\.?|code)\s*(?:n[°º\"*]?|no\.?|number)\s*"
_CODE_DIGITS: Mapping[str, str] = MappingProxyType({"A": r"0*1", "B": r"0*6", "E": r"0*19"})

# <L> is replaced by the type letter, <C> by the keyword-labelled code.
_TYPE_TIER_TEMPLATES: tuple[tuple[int, str, float, bool, tuple[str, ...]], ...] = (
    (1, "grupo", 0.98, False, (r"GRUPO\s+(?-i:<L>)\b[\s\S]*?<C>",)),
    (2, "factura", 0.96, False, (r"\b(?-i:<L>)\s+FACTURA\b[\s\S]*?<C>",)),
    (3, "window", 0.92, False, (
        r"\b(?-i:<L>)\b[\s\S]{0,200}?<C>",
        r"<C>[\s\S]{0,200}?\b(?-i:<L>)\b",
    )),
    (4, "same_line", 0.95, False, (r"\b(?-i:<L>)[ \t]*<C>",)),
    (5, "next_line", 0.90, False, (r"\b(?-i:<L>)[ \t]*(?:\r\n|\r|\n)\s*<C>",)),
    (6, "flexible", 0.88, False, (r"(?-i:<L>)\s*<C>",)),
    (7, "proximity", 0.82, False, (
        r"(?-i:<L>)[\s\S]{0,100}?<C>",
        r"<C>[\s\S]{0,100}?(?-i:<L>)",
    )),
    (8, "correlation", 0.75, True, (r"(?<!\S)(?-i:<L>)(?!\S)", r"<C>")),
)


@dataclass(frozen=True)
class TypeTierPatterns:
    """Patterns probing one type letter at one cascade tier."""

    tier: int
    strategy: str
    letter: str
    confidence: float
    require_all: bool
    patterns: tuple[re.Pattern[str], ...]


@dataclass(frozen=True)
class FieldPattern:
    """One extraction attempt: the value is the pattern's first group."""

    name: str
    pattern: re.Pattern[str]
    confidence: float
    date_format: str = ""


@dataclass(frozen=True)
class PatternRegistry:
    type_tiers: tuple[TypeTierPatterns, ...]
    letter_tokens: Mapping[str, re.Pattern[str]]
    code_tokens: Mapping[str, re.Pattern[str]]
    invoice_number: tuple[FieldPattern, ...]
    invoice_date: tuple[FieldPattern, ...]
    client_cuit: tuple[FieldPattern, ...]


def complete_type_pair(letter: str | None, code: str | None) -> tuple[str | None, str | None]:
    """Fill whichever half of the (letter, code) pair is missing."""
    if letter and not code:
        return letter, TYPE_CODES.get(letter)
    if code and not letter:
        return CODE_TYPES.get(code), code
    return letter, code


def _code_fragment(letter: str) -> str:
    return rf"{_CODE_KEYWORD}{_CODE_DIGITS[letter]}\b"


def _build_type_tiers() -> tuple[TypeTierPatterns, ...]:
    tiers: list[TypeTierPatterns] = []
    for tier, strategy, confidence, require_all, templates in _TYPE_TIER_TEMPLATES:
        for letter in TYPE_LETTERS:
            compiled = tuple(
                re.compile(
                    template.replace("<L>", letter).replace("<C>", _code_fragment(letter)),
                    _FLAGS,
                )
                for template in templates
            )
            tiers.append(
                TypeTierPatterns(tier, strategy, letter, confidence, require_all, compiled)
            )
    return tuple(tiers)


_NUMBER = r"(?<!\d)(\d{5}-\d{7,8})(?!\d)"


def _build_registry() -> PatternRegistry:
    return PatternRegistry(
        type_tiers=_build_type_tiers(),
        letter_tokens=MappingProxyType(
            {letter: re.compile(rf"\b{letter}\b") for letter in TYPE_LETTERS}
        ),
        code_tokens=MappingProxyType(
            {code: re.compile(rf"\b{code}\b") for code in CODE_TYPES}
        ),
        invoice_number=(
            FieldPattern("labeled", re.compile(r"N[º°\"*]?\s*" + _NUMBER, _FLAGS), 0.95),
            FieldPattern("bare", re.compile(r"\b(\d{5}-\d{7,8})\b", _FLAGS), 0.92),
            FieldPattern(
                "spaced", re.compile(r"(?<!\d)(\d{5}\s*-\s*\d{7,8})(?!\d)", _FLAGS), 0.88
            ),
            FieldPattern("invoice_context", re.compile(r"factura[^\d]*?" + _NUMBER, _FLAGS), 0.85),
            FieldPattern("code_context", re.compile(r"c[óo]digo[^\d]*?" + _NUMBER, _FLAGS), 0.85),
        ),
        invoice_date=(
            FieldPattern(
                "labeled", re.compile(r"fecha:\s*(\d{1,2}/\d{1,2}/\d{4})", _FLAGS), 0.95, "%d/%m/%Y"
            ),
            FieldPattern(
                "bare", re.compile(r"\b(\d{1,2}/\d{1,2}/\d{4})\b", _FLAGS), 0.90, "%d/%m/%Y"
            ),
            FieldPattern(
                "spaced",
                re.compile(r"(?<!\d)(\d{1,2}\s*/\s*\d{1,2}\s*/\s*\d{4})(?!\d)", _FLAGS),
                0.85,
                "%d/%m/%Y",
            ),
            FieldPattern(
                "dashed", re.compile(r"\b(\d{1,2}-\d{1,2}-\d{4})\b", _FLAGS), 0.85, "%d-%m-%Y"
            ),
            FieldPattern(
                "dotted", re.compile(r"\b(\d{1,2}\.\d{1,2}\.\d{4})\b", _FLAGS), 0.85, "%d.%m.%Y"
            ),
        ),
        client_cuit=(
            FieldPattern("canonical", re.compile(r"\b(\d{2}-\d{8}-\d)\b", _FLAGS), 0.95),
            FieldPattern(
                "spaced", re.compile(r"\b(\d{2}\s*-\s*\d{8}\s*-\s*\d)\b", _FLAGS), 0.90
            ),
            FieldPattern("bare", re.compile(r"\b(\d{11})\b", _FLAGS), 0.80),
            FieldPattern(
                "labeled",
                re.compile(r"C\.?U\.?I\.?T[.:\s]*(\d{2}[-\s]?\d{8}[-\s]?\d)(?!\d)", _FLAGS),
                0.98,
            ),
        ),
    )


REGISTRY: PatternRegistry = _build_registry()
