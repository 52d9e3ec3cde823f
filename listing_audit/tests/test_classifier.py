"""
Tests for token relevance, combo classification, intent and hook detection.
"""

import pytest

from listing_audit.models import AuditContext, ComboClassification, FieldSource, ListingMetadata
from listing_audit.services.classifier import (
    Classifier,
    brand_vocabulary,
    classify,
    strategic_value,
)
from listing_audit.services.default_rules import BASE_LAYER, SAMPLE_CLIENT_LAYER
from listing_audit.services.rule_resolver import merge_rule_layers
from listing_audit.services.tokenizer import generate_combos, tokenize_listing


def classified(metadata, rule_set):
    tokens = tokenize_listing(metadata)
    combos = generate_combos(tokens, frozenset(rule_set.stopwords))
    scored, combos = classify(tokens, combos, rule_set, brand_name=metadata.brand_name)
    return scored, {(c.source, c.text): c for c in combos}


class TestTokenRelevance:

    def test_vertical_relevance(self, language_rules, language_listing) -> None:
        tokens, _ = classified(language_listing, language_rules)
        relevance = {t.text: t.relevance for t in tokens if t.source == FieldSource.TITLE}

        assert relevance == {"learn": 3, "spanish": 3, "fast": 1}

    def test_base_rules_treat_domain_words_as_neutral(self, base_rules, language_listing) -> None:
        tokens, _ = classified(language_listing, base_rules)
        assert {t.relevance for t in tokens if t.source == FieldSource.TITLE} == {1}

    @pytest.mark.parametrize("text,expected", [
        ("30", 0),
        ("days", 0),
        ("app", 0),
        ("free", 2),
        ("planner", 1),
    ])
    def test_low_value_and_explicit_relevance(self, base_rules, text, expected) -> None:
        assert Classifier(base_rules).token_relevance(text) == expected

    def test_whitelist_beats_low_value(self) -> None:
        rules = merge_rule_layers([BASE_LAYER, SAMPLE_CLIENT_LAYER])
        assert Classifier(rules).token_relevance("365") == 1


class TestComboClassification:

    def test_language_listing(self, language_rules, language_listing) -> None:
        _, combos = classified(language_listing, language_rules)

        assert combos[(FieldSource.TITLE, "learn spanish")].classification == ComboClassification.GENERIC
        assert combos[(FieldSource.SUBTITLE, "30")].classification == ComboClassification.LOW_VALUE
        assert combos[(FieldSource.SUBTITLE, "30 days")].classification == ComboClassification.LOW_VALUE
        # One meaningful token keeps the phrase generic
        assert combos[(FieldSource.SUBTITLE, "in 30 days")].classification == ComboClassification.GENERIC

    def test_brand_name_joins_vocabulary(self, base_rules, productivity_listing) -> None:
        _, combos = classified(productivity_listing, base_rules)

        assert combos[(FieldSource.TITLE, "acme")].classification == ComboClassification.BRAND
        assert combos[(FieldSource.TITLE, "acme planner")].classification == ComboClassification.BRAND
        assert combos[(FieldSource.TITLE, "planner")].classification == ComboClassification.GENERIC

    def test_brand_terms_from_client_layer(self, productivity_listing) -> None:
        listing = productivity_listing.model_copy(update={"brand_name": None})

        _, base_combos = classified(listing, merge_rule_layers([BASE_LAYER]))
        _, client_combos = classified(listing, merge_rule_layers([BASE_LAYER, SAMPLE_CLIENT_LAYER]))

        assert base_combos[(FieldSource.TITLE, "acme")].classification == ComboClassification.GENERIC
        assert client_combos[(FieldSource.TITLE, "acme")].classification == ComboClassification.BRAND

    def test_whitelisted_number_is_not_low_value(self, productivity_listing) -> None:
        _, base_combos = classified(productivity_listing, merge_rule_layers([BASE_LAYER]))
        _, client_combos = classified(productivity_listing, merge_rule_layers([BASE_LAYER, SAMPLE_CLIENT_LAYER]))

        assert base_combos[(FieldSource.TITLE, "365")].classification == ComboClassification.LOW_VALUE
        assert client_combos[(FieldSource.TITLE, "365")].classification == ComboClassification.GENERIC

    def test_brand_vocabulary(self, base_rules) -> None:
        assert brand_vocabulary(base_rules, "Lingo Pro") == frozenset({"lingo", "pro", "lingo pro"})
        assert brand_vocabulary(base_rules) == frozenset()


class TestIntent:
    """First match over patterns ordered by priority."""

    @pytest.mark.parametrize("text,label,category", [
        ("learn spanish", "informational", "learning"),
        ("learn best spanish", "informational", "learning"),
        ("best spanish", "commercial", None),
        ("download spanish", "transactional", None),
        ("how to", "informational", None),
        ("spanish", "unclassified", None),
    ])
    def test_language_learning_intents(self, language_rules, text, label, category) -> None:
        assert Classifier(language_rules).classify_intent(text) == (label, category)

    def test_vertical_vocabulary_absent_from_base(self, base_rules) -> None:
        assert Classifier(base_rules).classify_intent("learn spanish") == ("unclassified", None)

    def test_combo_intent_is_recorded(self, language_rules, language_listing) -> None:
        _, combos = classified(language_listing, language_rules)
        combo = combos[(FieldSource.TITLE, "learn")]

        assert combo.intent == "informational"
        assert combo.intent_category == "learning"


class TestHooks:
    """Every matching hook label applies."""

    def test_all_matches_sorted(self, language_rules) -> None:
        assert Classifier(language_rules).classify_hooks("learn spanish fast") == [
            "learning_educational",
            "time_to_result",
        ]

    def test_multi_word_hook(self, language_rules, language_listing) -> None:
        _, combos = classified(language_listing, language_rules)

        assert combos[(FieldSource.SUBTITLE, "speak fluently")].hooks == ["outcome_benefit"]
        assert combos[(FieldSource.SUBTITLE, "in 30 days")].hooks == ["time_to_result"]

    def test_no_hooks(self, base_rules) -> None:
        assert Classifier(base_rules).classify_hooks("planner") == []


class TestStrategicValue:

    def test_values_from_language_listing(self, language_rules, language_listing) -> None:
        _, combos = classified(language_listing, language_rules)

        assert combos[(FieldSource.TITLE, "learn spanish")].strategic_value == 85.0
        assert combos[(FieldSource.TITLE, "spanish")].strategic_value == 60.0
        assert combos[(FieldSource.TITLE, "fast")].strategic_value == 25.0
        assert combos[(FieldSource.SUBTITLE, "in 30 days")].strategic_value == 21.67
        assert combos[(FieldSource.SUBTITLE, "30 days")].strategic_value == 0.0

    def test_capped_at_100(self) -> None:
        value = strategic_value(
            [3, 3, 3],
            ComboClassification.GENERIC,
            "informational",
            ["ease_of_use", "outcome_benefit", "trust_safety", "time_to_result"],
        )
        assert value == 100.0

    def test_empty_relevances(self) -> None:
        assert strategic_value([], ComboClassification.GENERIC, "informational", []) == 0.0


class TestClassifyIsPure:

    def test_same_inputs_same_outputs(self, language_rules, language_listing) -> None:
        assert classified(language_listing, language_rules) == classified(language_listing, language_rules)

    def test_inputs_are_not_mutated(self, language_rules) -> None:
        listing = ListingMetadata(subject_id="s", title="Learn Fast")
        tokens = tokenize_listing(listing)
        combos = generate_combos(tokens)

        classify(tokens, combos, language_rules)

        assert all(t.relevance is None for t in tokens)
        assert all(c.classification is None for c in combos)

    def test_context_is_irrelevant_to_classification(self, language_listing) -> None:
        a = merge_rule_layers([BASE_LAYER], AuditContext())
        b = merge_rule_layers([BASE_LAYER], AuditContext(vertical="unknown"))
        assert classified(language_listing, a) == classified(language_listing, b)
