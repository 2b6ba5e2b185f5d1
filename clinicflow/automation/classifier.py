"""
Appointment title -> treatment trigger type.

Rules are checked in table order and the first rule with any matching pattern
wins. Matching is plain case-insensitive substring containment, so the table
order decides titles that mention several treatments ("Dermal Filler Consult"
is a filler appointment).
"""
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence, Tuple

from ..models import TriggerType


@dataclass(frozen=True)
class TriggerRule:
    trigger_type: str
    patterns: Tuple[str, ...]

    def matches(self, lowered_title: str) -> bool:
        return any(p in lowered_title for p in self.patterns)


DEFAULT_RULES: Tuple[TriggerRule, ...] = (
    TriggerRule(TriggerType.morpheus8.value, ("morpheus8", "morpheus")),
    TriggerRule(TriggerType.toxins.value, ("botox", "toxin", "wrinkle treatment", "neurotoxin")),
    TriggerRule(TriggerType.filler.value, ("filler", "dermal filler", "juvederm", "restylane")),
    TriggerRule(TriggerType.consultation.value, ("consultation", "consult", "initial")),
)


class TriggerClassifier:
    def __init__(self, rules: Optional[Iterable[TriggerRule]] = None):
        rules = DEFAULT_RULES if rules is None else rules
        # patterns are compared against a lower-cased title
        self.rules: Tuple[TriggerRule, ...] = tuple(
            TriggerRule(r.trigger_type, tuple(p.lower() for p in r.patterns if p)) for r in rules
        )

    def classify(self, title: Optional[str]) -> Optional[str]:
        if not title:
            return None
        lowered = title.lower()
        for rule in self.rules:
            if rule.matches(lowered):
                return rule.trigger_type
        return None

    @classmethod
    def from_mapping(cls, mapping: Sequence[Tuple[str, Sequence[str]]]) -> "TriggerClassifier":
        """Build from ``[(trigger_type, [patterns...]), ...]`` in priority order."""
        return cls(TriggerRule(t, tuple(p)) for t, p in mapping)
