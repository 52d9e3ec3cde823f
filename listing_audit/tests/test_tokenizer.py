"""
Tests for the tokenizer and combo generator.

Covers normalization (NFKC, camelCase, apostrophes, locale-aware casing,
separators and hyphens), token positions, and combo generation order, field
boundaries and stopword handling.
"""

import pytest

from listing_audit.models import FieldSource, ListingMetadata
from listing_audit.services.tokenizer import (
    generate_combos,
    normalize_text,
    tokenize,
    tokenize_listing,
)


class TestNormalizeText:
    """Normalization of raw field text into token strings."""

    @pytest.mark.parametrize("text,expected", [
        ("Learn Spanish Fast", ["learn", "spanish", "fast"]),
        ("PhotoEditor Pro", ["photo", "editor", "pro"]),
        ("PDFReader", ["pdf", "reader"]),
        ("3D Photo", ["3d", "photo"]),
        ("Don't Starve", ["dont", "starve"]),
        ("Check-in & Go", ["check-in", "go"]),
        ("--Hello--World--", ["hello-world"]),
        ("Plan—Track", ["plan", "track"]),
        ("foo_bar", ["foo", "bar"]),
        ("Budget, Save: Invest!", ["budget", "save", "invest"]),
    ])
    def test_normalizes_english_text(self, text, expected) -> None:
        assert normalize_text(text, "en-US") == expected

    def test_nfkc_folds_compatibility_characters(self) -> None:
        """Full-width letters and ligatures fold to their plain forms."""
        assert normalize_text("ｆｉｔｎｅｓｓ") == ["fitness"]
        assert normalize_text("ﬁt") == ["fit"]

    def test_turkish_dotless_i(self) -> None:
        assert normalize_text("ISTANBUL", "tr-TR") == ["ıstanbul"]
        assert normalize_text("İstanbul", "tr-TR") == ["istanbul"]

    def test_dotted_capital_i_outside_turkish(self) -> None:
        """Capital dotted I never leaves a combining dot behind."""
        assert normalize_text("İstanbul", "en-US") == ["istanbul"]
        assert normalize_text("ISTANBUL", "en-US") == ["istanbul"]

    @pytest.mark.parametrize("text", [None, "", "   ", "!!! ---"])
    def test_empty_input_yields_no_tokens(self, text) -> None:
        assert normalize_text(text) == []

    def test_is_deterministic(self) -> None:
        text = "Master French Grammar – Daily Lessons"
        assert normalize_text(text, "fr-FR") == normalize_text(text, "fr-FR")


class TestTokenize:
    """Token objects and listing-level tokenization."""

    def test_positions_and_source(self) -> None:
        tokens = tokenize("Speak fluently in 30 days", "en-US", FieldSource.SUBTITLE)

        assert [t.text for t in tokens] == ["speak", "fluently", "in", "30", "days"]
        assert [t.position for t in tokens] == [0, 1, 2, 3, 4]
        assert all(t.source == FieldSource.SUBTITLE for t in tokens)
        assert all(t.relevance is None for t in tokens)

    def test_tokenize_listing_keeps_field_order(self) -> None:
        metadata = ListingMetadata(
            subject_id="s1",
            title="Habit Tracker",
            subtitle="Build routines",
            description="Track daily habits.",
        )
        tokens = tokenize_listing(metadata, "en-US")

        assert [t.source for t in tokens] == [
            FieldSource.TITLE, FieldSource.TITLE,
            FieldSource.SUBTITLE, FieldSource.SUBTITLE,
            FieldSource.DESCRIPTION, FieldSource.DESCRIPTION, FieldSource.DESCRIPTION,
        ]
        # Positions restart in each field
        assert [t.position for t in tokens if t.source == FieldSource.DESCRIPTION] == [0, 1, 2]

    def test_tokenize_listing_uses_metadata_locale(self) -> None:
        metadata = ListingMetadata(subject_id="s1", title="ISPARTA", locale="tr-TR")
        assert [t.text for t in tokenize_listing(metadata)] == ["ısparta"]


class TestGenerateCombos:
    """Contiguous 1-3 token n-grams per field."""

    def test_order_is_start_then_length(self) -> None:
        tokens = tokenize("Learn Spanish Fast", "en-US", FieldSource.TITLE)
        combos = generate_combos(tokens)

        assert [c.text for c in combos] == [
            "learn",
            "learn spanish",
            "learn spanish fast",
            "spanish",
            "spanish fast",
            "fast",
        ]
        assert [c.length for c in combos] == [1, 2, 3, 1, 2, 1]
        assert combos[1].tokens == ["learn", "spanish"]
        assert combos[3].position == 1

    def test_combos_never_span_fields(self) -> None:
        tokens = (
            tokenize("Habit Tracker", "en-US", FieldSource.TITLE)
            + tokenize("Daily Goals", "en-US", FieldSource.SUBTITLE)
        )
        texts = [c.text for c in generate_combos(tokens)]

        assert "tracker daily" not in texts
        assert "habit tracker" in texts
        assert "daily goals" in texts

    def test_title_combos_come_before_subtitle_combos(self) -> None:
        tokens = (
            tokenize("Goals", "en-US", FieldSource.SUBTITLE)
            + tokenize("Habit", "en-US", FieldSource.TITLE)
        )
        combos = generate_combos(tokens)
        assert [c.source for c in combos] == [FieldSource.TITLE, FieldSource.SUBTITLE]

    def test_pure_stopword_combos_are_dropped(self) -> None:
        tokens = tokenize("The Best App", "en-US", FieldSource.TITLE)
        texts = [c.text for c in generate_combos(tokens, stopwords={"the"})]

        assert "the" not in texts
        assert "the best" in texts
        assert "the best app" in texts

    def test_max_length(self) -> None:
        tokens = tokenize("one two three four", "en-US", FieldSource.TITLE)
        assert max(c.length for c in generate_combos(tokens, max_length=2)) == 2
        assert len(generate_combos(tokens)) == 4 + 3 + 2

    def test_empty_tokens(self) -> None:
        assert generate_combos([]) == []

    def test_is_deterministic(self) -> None:
        tokens = tokenize("Master French Grammar Daily", "en-US", FieldSource.TITLE)
        assert generate_combos(tokens, {"daily"}) == generate_combos(tokens, {"daily"})
