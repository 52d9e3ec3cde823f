"""
Coverage breakdowns attached to every AuditResult: combo coverage per field,
search-intent distribution and hook coverage.
"""

from typing import Dict, List, Sequence

from listing_audit.models.enums import ComboClassification, FieldSource, IntentLabel
from listing_audit.models.schemas import (
    Combo,
    ComboCoverage,
    FieldComboCoverage,
    FieldIntentCoverage,
    HookCoverage,
    IntentCoverage,
)
from listing_audit.services.tokenizer import FIELD_ORDER


# Title and subtitle carry the ranking weight; description is informational only
INTENT_FIELD_WEIGHTS = {
    FieldSource.TITLE: 0.6,
    FieldSource.SUBTITLE: 0.4,
}


def _by_field(combos: Sequence[Combo]) -> Dict[FieldSource, List[Combo]]:
    grouped: Dict[FieldSource, List[Combo]] = {field: [] for field in FIELD_ORDER}
    for combo in combos:
        grouped[combo.source].append(combo)
    return grouped


def combo_coverage(combos: Sequence[Combo]) -> ComboCoverage:
    grouped = _by_field(combos)
    fields = {}
    for field, items in grouped.items():
        fields[field.value] = FieldComboCoverage(
            total=len(items),
            generic=sum(1 for c in items if c.classification == ComboClassification.GENERIC),
            brand=sum(1 for c in items if c.classification == ComboClassification.BRAND),
            low_value=sum(1 for c in items if c.classification == ComboClassification.LOW_VALUE),
        )

    title_texts = {c.text for c in grouped[FieldSource.TITLE]}
    incremental = sorted({
        c.text for c in grouped[FieldSource.SUBTITLE]
        if c.classification == ComboClassification.GENERIC and c.text not in title_texts
    })
    unique = title_texts | {c.text for c in grouped[FieldSource.SUBTITLE]}
    return ComboCoverage(fields=fields, subtitle_incremental=incremental, total_unique=len(unique))


def intent_coverage(combos: Sequence[Combo]) -> IntentCoverage:
    """
    Intent distribution of title and subtitle combos.

    Field score = classified / total * 100 (0 for an empty field); the overall
    score weights title 0.6 and subtitle 0.4.
    """
    grouped = _by_field(combos)
    fields: Dict[str, FieldIntentCoverage] = {}
    overall = 0.0
    for field, weight in INTENT_FIELD_WEIGHTS.items():
        items = grouped[field]
        counts = {label.value: 0 for label in IntentLabel}
        for combo in items:
            label = combo.intent or IntentLabel.UNCLASSIFIED.value
            counts[label] = counts.get(label, 0) + 1
        classified = len(items) - counts[IntentLabel.UNCLASSIFIED.value]
        score = round(classified / len(items) * 100, 2) if items else 0.0
        fields[field.value] = FieldIntentCoverage(total=len(items), counts=counts, score=score)
        overall += score * weight
    return IntentCoverage(fields=fields, score=round(overall, 2))


def hook_coverage(combos: Sequence[Combo]) -> HookCoverage:
    grouped = _by_field(combos)
    labels = {
        field.value: sorted({h for c in items for h in c.hooks})
        for field, items in grouped.items()
    }
    counts: Dict[str, int] = {}
    for combo in combos:
        for label in combo.hooks:
            counts[label] = counts.get(label, 0) + 1
    return HookCoverage(labels=labels, counts=dict(sorted(counts.items())))
