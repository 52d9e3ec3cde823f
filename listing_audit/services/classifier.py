"""
Classifier Service

Applies a MergedRuleSet to tokens and combos.

Token relevance (0-3):
- an explicit token_relevance rule wins
- otherwise a low-value pattern match scores 0
- otherwise the neutral default 1
- a token matching a brand whitelist pattern never scores 0

Combo classification:
- brand: any token (or the whole combo) is in the brand vocabulary
- low-value: a low-value pattern matches the combo text (unless one of its
  tokens is whitelisted), or every token scores 0
- generic: everything else

Intent is first-match over the rule set's ordered intent patterns; no match
yields "unclassified". Hooks are all-matches: every matching hook label is kept.
"""

import re
from functools import lru_cache
from typing import Dict, Iterable, List, Optional, Pattern, Sequence, Tuple

from listing_audit.models.enums import ComboClassification, FieldSource, IntentLabel
from listing_audit.models.rules import MergedRuleSet
from listing_audit.models.schemas import Combo, Token
from listing_audit.services.tokenizer import normalize_text


NEUTRAL_RELEVANCE = 1
MAX_RELEVANCE = 3


@lru_cache(maxsize=2048)
def compile_pattern(pattern: str) -> Pattern:
    return re.compile(pattern, re.IGNORECASE)


def brand_vocabulary(rule_set: MergedRuleSet, brand_name: Optional[str] = None, locale: Optional[str] = None) -> frozenset:
    """Brand terms from the rule set plus the listing's own brand name and its tokens."""
    terms = set(rule_set.brand_terms)
    words = normalize_text(brand_name, locale)
    if words:
        terms.update(words)
        terms.add(" ".join(words))
    return frozenset(terms)


def strategic_value(
    relevances: Sequence[int],
    classification: ComboClassification,
    intent: str,
    hooks: Sequence[str],
) -> float:
    """
    Strategic value of a combo (0-100).

    Mean token relevance scaled to 60, +15 for a classified intent, +5 per hook
    label (capped at 15) and +5 per token beyond the first. Low-value combos score 0.
    """
    if classification == ComboClassification.LOW_VALUE or not relevances:
        return 0.0
    value = sum(relevances) / len(relevances) / MAX_RELEVANCE * 60
    if intent != IntentLabel.UNCLASSIFIED.value:
        value += 15
    value += min(15, 5 * len(hooks))
    value += 5 * (len(relevances) - 1)
    return round(min(100.0, value), 2)


class Classifier:
    """Rule-set bound classifier; patterns are compiled once per instance."""

    def __init__(self, rule_set: MergedRuleSet, brand_name: Optional[str] = None, locale: Optional[str] = None):
        self.rule_set = rule_set
        self.brands = brand_vocabulary(rule_set, brand_name, locale)
        self._intents = [(compile_pattern(p.pattern), p) for p in rule_set.intent_patterns]
        self._hooks = [(compile_pattern(p.pattern), p.label) for p in rule_set.hook_patterns]
        self._low_value = [compile_pattern(p) for p in rule_set.low_value_patterns]
        self._whitelist = [compile_pattern(p) for p in rule_set.brand_whitelist_patterns]

    def is_whitelisted(self, text: str) -> bool:
        return any(p.search(text) for p in self._whitelist)

    def is_low_value(self, text: str) -> bool:
        return any(p.search(text) for p in self._low_value)

    def token_relevance(self, text: str) -> int:
        relevance = self.rule_set.token_relevance.get(text)
        whitelisted = self.is_whitelisted(text)
        if relevance is None:
            relevance = 0 if (not whitelisted and self.is_low_value(text)) else NEUTRAL_RELEVANCE
        if whitelisted:
            relevance = max(relevance, NEUTRAL_RELEVANCE)
        return relevance

    def classify_intent(self, text: str) -> Tuple[str, Optional[str]]:
        for regex, pattern in self._intents:
            if regex.search(text):
                return pattern.label, pattern.category
        return IntentLabel.UNCLASSIFIED.value, None

    def classify_hooks(self, text: str) -> List[str]:
        return sorted({label for regex, label in self._hooks if regex.search(text)})

    def combo_classification(self, combo: Combo, relevances: Sequence[int]) -> ComboClassification:
        if combo.text in self.brands or any(t in self.brands for t in combo.tokens):
            return ComboClassification.BRAND
        whitelisted = any(self.is_whitelisted(t) for t in combo.tokens)
        if not whitelisted and self.is_low_value(combo.text):
            return ComboClassification.LOW_VALUE
        if relevances and all(r == 0 for r in relevances):
            return ComboClassification.LOW_VALUE
        return ComboClassification.GENERIC

    def score_tokens(self, tokens: Iterable[Token]) -> List[Token]:
        return [t.model_copy(update={"relevance": self.token_relevance(t.text)}) for t in tokens]

    def classify_combos(self, combos: Iterable[Combo], scored_tokens: Iterable[Token]) -> List[Combo]:
        relevance_at: Dict[Tuple[FieldSource, int], int] = {
            (t.source, t.position): t.relevance for t in scored_tokens
        }
        classified = []
        for combo in combos:
            relevances = [
                relevance_at.get((combo.source, combo.position + offset), NEUTRAL_RELEVANCE)
                for offset in range(combo.length)
            ]
            classification = self.combo_classification(combo, relevances)
            intent, category = self.classify_intent(combo.text)
            hooks = self.classify_hooks(combo.text)
            classified.append(combo.model_copy(update={
                "classification": classification,
                "intent": intent,
                "intent_category": category,
                "hooks": hooks,
                "strategic_value": strategic_value(relevances, classification, intent, hooks),
            }))
        return classified


def classify(
    tokens: Sequence[Token],
    combos: Sequence[Combo],
    rule_set: MergedRuleSet,
    brand_name: Optional[str] = None,
    locale: Optional[str] = None,
) -> Tuple[List[Token], List[Combo]]:
    """Score tokens and classify combos against a merged rule set."""
    classifier = Classifier(rule_set, brand_name=brand_name, locale=locale)
    scored = classifier.score_tokens(tokens)
    return scored, classifier.classify_combos(combos, scored)
