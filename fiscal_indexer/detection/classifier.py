"""Invoice type classification.

Two classifiers share one contract:

* ``TieredTypeClassifier`` walks an ordered list of rules, most specific
  first, and stops at the first rule whose predicate holds. It never looks
  for competing types once a rule fires.
* ``UniqueTypeClassifier`` counts isolated letters and codes across the
  whole text and accepts a type only when a single one is present. Used by
  the bulk path; it may reject texts the tiered classifier accepts.
"""

import re
from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping
from dataclasses import dataclass

from fiscal_indexer.detection.models import DetectionCandidate
from fiscal_indexer.detection.patterns import (
    CODE_TYPES,
    REGISTRY,
    TYPE_CODES,
    TYPE_LETTERS,
    PatternRegistry,
)
from fiscal_indexer.logging.logger import Log


class BaseTypeClassifier(ABC):
    """Contract for invoice type classifiers."""

    @abstractmethod
    def classify(self, text: str) -> DetectionCandidate | None:
        """Return the detected (letter, code, confidence) or None."""

    def conflicting_types(self, text: str) -> tuple[str, ...]:
        """Type letters competing for the text when classification was refused."""
        return ()


@dataclass(frozen=True)
class ClassificationRule:
    tier: int
    strategy: str
    letter: str
    confidence: float
    predicate: Callable[[str], bool]

    def build(self) -> DetectionCandidate:
        return DetectionCandidate(
            strategy=self.strategy,
            letter=self.letter,
            code=TYPE_CODES[self.letter],
            tier=self.tier,
            confidence=self.confidence,
        )


def _any_of(patterns: tuple[re.Pattern[str], ...]) -> Callable[[str], bool]:
    return lambda text: any(pattern.search(text) for pattern in patterns)


def _all_of(patterns: tuple[re.Pattern[str], ...]) -> Callable[[str], bool]:
    return lambda text: all(pattern.search(text) for pattern in patterns)


def build_tier_rules(registry: PatternRegistry = REGISTRY) -> tuple[ClassificationRule, ...]:
    """Rules in evaluation order: by tier, then A, B, E within a tier."""
    rules = [
        ClassificationRule(
            tier=entry.tier,
            strategy=entry.strategy,
            letter=entry.letter,
            confidence=entry.confidence,
            predicate=_all_of(entry.patterns) if entry.require_all else _any_of(entry.patterns),
        )
        for entry in registry.type_tiers
    ]
    rules.sort(key=lambda rule: (rule.tier, TYPE_LETTERS.index(rule.letter)))
    return tuple(rules)


class TieredTypeClassifier(BaseTypeClassifier):
    def __init__(self, rules: tuple[ClassificationRule, ...] | None = None) -> None:
        self._rules = rules if rules is not None else build_tier_rules()

    def classify(self, text: str) -> DetectionCandidate | None:
        if not text or not text.strip():
            return None
        for rule in self._rules:
            if rule.predicate(text):
                Log.debug(
                    f"Type {rule.letter} detected by tier {rule.tier} ({rule.strategy})"
                )
                return rule.build()
        return None


@dataclass(frozen=True)
class TypeSignals:
    """Occurrence counts of isolated type letters and codes in a text."""

    letters: Mapping[str, int]
    codes: Mapping[str, int]

    @property
    def present_letters(self) -> tuple[str, ...]:
        return tuple(letter for letter, count in self.letters.items() if count)

    @property
    def present_codes(self) -> tuple[str, ...]:
        return tuple(code for code, count in self.codes.items() if count)

    @property
    def unique_letter(self) -> str | None:
        present = self.present_letters
        return present[0] if len(present) == 1 else None

    @property
    def unique_code(self) -> str | None:
        present = self.present_codes
        return present[0] if len(present) == 1 else None


class UniqueTypeClassifier(BaseTypeClassifier):
    LETTER_AND_CODE_CONFIDENCE = 0.90
    CODE_ONLY_CONFIDENCE = 0.85
    LETTER_ONLY_CONFIDENCE = 0.80

    def __init__(self, registry: PatternRegistry = REGISTRY) -> None:
        self._registry = registry

    def signals(self, text: str) -> TypeSignals:
        return TypeSignals(
            letters={
                letter: len(pattern.findall(text))
                for letter, pattern in self._registry.letter_tokens.items()
            },
            codes={
                code: len(pattern.findall(text))
                for code, pattern in self._registry.code_tokens.items()
            },
        )

    def classify(self, text: str) -> DetectionCandidate | None:
        if not text or not text.strip():
            return None
        return self._decide(self.signals(text))

    def conflicting_types(self, text: str) -> tuple[str, ...]:
        if not text or not text.strip():
            return ()
        signals = self.signals(text)
        if self._decide(signals) is not None:
            return ()
        competing = set(signals.present_letters)
        competing.update(CODE_TYPES[code] for code in signals.present_codes)
        if len(competing) < 2:
            return ()
        return tuple(letter for letter in TYPE_LETTERS if letter in competing)

    def _decide(self, signals: TypeSignals) -> DetectionCandidate | None:
        letter = signals.unique_letter
        code = signals.unique_code
        if letter and code:
            if TYPE_CODES[letter] != code:
                Log.debug(f"Unique letter {letter} disagrees with unique code {code}")
                return None
            return self._candidate("unique_letter_and_code", letter, self.LETTER_AND_CODE_CONFIDENCE)
        if code:
            return self._candidate("unique_code", CODE_TYPES[code], self.CODE_ONLY_CONFIDENCE)
        if letter:
            return self._candidate("unique_letter", letter, self.LETTER_ONLY_CONFIDENCE)
        return None

    @staticmethod
    def _candidate(strategy: str, letter: str, confidence: float) -> DetectionCandidate:
        return DetectionCandidate(
            strategy=strategy,
            letter=letter,
            code=TYPE_CODES[letter],
            tier=0,
            confidence=confidence,
        )
