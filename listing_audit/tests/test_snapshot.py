"""
Tests for content hashing, snapshot stores, deduplication and diffs.
"""

import hashlib
import json
from datetime import datetime, timedelta, timezone

import asyncpg
import pytest

from listing_audit.core.exceptions import SnapshotStoreError, SubjectMismatchError
from listing_audit.models import AuditContext, ListingMetadata
from listing_audit.services.snapshot import (
    InMemorySnapshotStore,
    PostgresSnapshotStore,
    content_hash,
    diff,
    make_snapshot,
    metadata_hash,
    snapshot,
)


T0 = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)
LANGUAGE_CONTEXT = AuditContext(vertical="language_learning")


@pytest.fixture
def audit(audit_service, language_rules):
    """Build an AuditResult synchronously against the language_learning rules."""
    def _audit(metadata, timestamp=T0, rule_set=language_rules):
        return audit_service.audit_with_rules(metadata, rule_set.context, rule_set, timestamp)
    return _audit


class TestHashing:

    def test_content_hash_ignores_timestamp(self, audit, language_listing) -> None:
        first = audit(language_listing, T0)
        later = audit(language_listing, T0 + timedelta(days=1))

        assert first.audit_timestamp != later.audit_timestamp
        assert content_hash(first) == content_hash(later)

    def test_content_hash_tracks_content(self, audit, language_listing) -> None:
        changed = language_listing.model_copy(update={"title": "Learn Spanish"})
        assert content_hash(audit(language_listing)) != content_hash(audit(changed))

    def test_content_hash_survives_serialization(self, audit, language_listing) -> None:
        result = audit(language_listing)
        reloaded = type(result).model_validate_json(result.model_dump_json())
        assert content_hash(reloaded) == content_hash(result)

    def test_metadata_hash(self, language_listing) -> None:
        fields = ["Learn Spanish Fast", "Speak fluently in 30 days", language_listing.description, "education", "en-US"]
        expected = hashlib.sha256(json.dumps(fields, separators=(",", ":")).encode("utf-8")).hexdigest()
        assert metadata_hash(language_listing) == expected

    def test_metadata_hash_keeps_field_boundaries(self) -> None:
        first = ListingMetadata(subject_id="x", title="a|b", subtitle="c")
        second = ListingMetadata(subject_id="x", title="a", subtitle="b|c")
        assert metadata_hash(first) != metadata_hash(second)


class TestInMemorySnapshotStore:

    @pytest.mark.asyncio
    async def test_put_is_idempotent(self, audit, language_listing) -> None:
        store = InMemorySnapshotStore()
        record = make_snapshot(audit(language_listing))

        assert await store.put(record) is True
        assert await store.put(record) is False
        assert len(await store.list("app-lingo")) == 1

    @pytest.mark.asyncio
    async def test_conflicting_put_raises(self, audit, language_listing) -> None:
        store = InMemorySnapshotStore()
        await store.put(make_snapshot(audit(language_listing)))
        changed = language_listing.model_copy(update={"title": "Learn French"})

        with pytest.raises(SnapshotStoreError):
            await store.put(make_snapshot(audit(changed)))

    @pytest.mark.asyncio
    async def test_list_range_is_inclusive_and_ordered(self, audit, language_listing) -> None:
        store = InMemorySnapshotStore()
        for hours in (3, 1, 2, 0):
            await store.put(make_snapshot(audit(language_listing, T0 + timedelta(hours=hours))))

        everything = await store.list("app-lingo")
        window = await store.list("app-lingo", T0 + timedelta(hours=1), T0 + timedelta(hours=2))

        assert [s.audit_timestamp for s in everything] == [T0 + timedelta(hours=h) for h in range(4)]
        assert [s.audit_timestamp for s in window] == [T0 + timedelta(hours=1), T0 + timedelta(hours=2)]
        assert (await store.get_latest("app-lingo")).audit_timestamp == T0 + timedelta(hours=3)

    @pytest.mark.asyncio
    async def test_unknown_subject(self) -> None:
        store = InMemorySnapshotStore()
        assert await store.get_latest("nobody") is None
        assert await store.list("nobody") == []


class TestSnapshotDedup:

    @pytest.mark.asyncio
    async def test_identical_content_is_not_appended(self, audit, language_listing, snapshot_store) -> None:
        first = await snapshot(audit(language_listing, T0), snapshot_store)
        second = await snapshot(audit(language_listing, T0 + timedelta(hours=1)), snapshot_store)

        assert second.audit_timestamp == first.audit_timestamp
        assert second.content_hash == first.content_hash
        assert len(await snapshot_store.list("app-lingo")) == 1

    @pytest.mark.asyncio
    async def test_changed_content_is_appended(self, audit, language_listing, snapshot_store) -> None:
        await snapshot(audit(language_listing, T0), snapshot_store)
        changed = language_listing.model_copy(update={"subtitle": "Speak with confidence"})
        record = await snapshot(audit(changed, T0 + timedelta(hours=1)), snapshot_store)

        assert record.audit_timestamp == T0 + timedelta(hours=1)
        assert len(await snapshot_store.list("app-lingo")) == 2

    @pytest.mark.asyncio
    async def test_dedup_disabled(self, audit, language_listing, snapshot_store) -> None:
        await snapshot(audit(language_listing, T0), snapshot_store, dedup=False)
        await snapshot(audit(language_listing, T0 + timedelta(hours=1)), snapshot_store, dedup=False)

        assert len(await snapshot_store.list("app-lingo")) == 2


class TestDiff:

    def test_title_change(self, audit, language_listing) -> None:
        before = audit(language_listing.model_copy(update={"title": "Learn Spanish"}), T0)
        after = audit(language_listing, T0 + timedelta(days=7))

        result = diff(make_snapshot(before), make_snapshot(after))

        assert result.title_changed is True
        assert result.subtitle_changed is False
        assert result.description_changed is False
        assert result.rule_set_changed is False
        assert result.from_timestamp == T0
        assert result.to_timestamp == T0 + timedelta(days=7)
        assert result.keywords_added == ["fast"]
        assert result.keywords_removed == []
        assert result.combos_added == ["fast", "learn spanish fast", "spanish fast"]
        assert result.combos_removed == []
        assert result.overall_delta == round(after.overall_score - before.overall_score, 4)
        assert result.kpi_deltas["title_word_count"] == round(
            after.kpis["title_word_count"].normalized - before.kpis["title_word_count"].normalized, 4
        )

    def test_description_change(self, audit, language_listing) -> None:
        before = audit(language_listing, T0)
        after = audit(language_listing.model_copy(update={"description": "Short daily lessons."}), T0 + timedelta(days=1))

        result = diff(make_snapshot(before), make_snapshot(after))

        assert result.title_changed is False
        assert result.subtitle_changed is False
        assert result.description_changed is True

    def test_is_antisymmetric(self, audit, language_listing) -> None:
        a = audit(language_listing.model_copy(update={"title": "Learn Spanish"}), T0)
        b = audit(language_listing, T0 + timedelta(days=1))

        forward, backward = diff(a, b), diff(b, a)

        assert forward.overall_delta == -backward.overall_delta
        assert forward.family_deltas == {k: -v for k, v in backward.family_deltas.items()}
        assert forward.combos_added == backward.combos_removed
        assert forward.keywords_removed == backward.keywords_added

    def test_identical_audits(self, audit, language_listing) -> None:
        result = audit(language_listing)
        same = diff(result, result)

        assert same.overall_delta == 0.0
        assert all(v == 0.0 for v in same.kpi_deltas.values())
        assert same.combos_added == same.combos_removed == []
        assert not (same.title_changed or same.subtitle_changed or same.description_changed)

    def test_rule_set_change(self, audit, language_listing, base_rules) -> None:
        result = diff(audit(language_listing, rule_set=base_rules), audit(language_listing))

        assert result.rule_set_changed is True
        assert result.title_changed is False
        assert result.kpi_deltas["title_high_value_keyword_count"] > 0

    def test_subject_mismatch(self, audit, language_listing, productivity_listing) -> None:
        with pytest.raises(SubjectMismatchError):
            diff(audit(language_listing), audit(productivity_listing))

    def test_missing_keys_count_as_zero(self, audit, language_listing) -> None:
        before = audit(language_listing)
        after = before.model_copy(update={"formulas": {**before.formulas, "new_formula": 40.0}})

        assert diff(before, after).formula_deltas["new_formula"] == 40.0
        assert diff(after, before).formula_deltas["new_formula"] == -40.0


class TestPostgresSnapshotStore:

    @pytest.mark.asyncio
    async def test_put_inserts_row(self, audit, language_listing, pool_getter, mock_connection) -> None:
        store = PostgresSnapshotStore(pool_getter)
        record = make_snapshot(audit(language_listing))

        assert await store.put(record) is True

        args = mock_connection.execute.call_args.args
        assert args[1:6] == (
            "app-lingo",
            T0,
            record.content_hash,
            record.result.version.rule_set_version,
            record.result.overall_score,
        )
        assert json.loads(args[6])["subject_id"] == "app-lingo"

    @pytest.mark.asyncio
    async def test_duplicate_put_returns_false(self, audit, language_listing, pool_getter, mock_connection) -> None:
        mock_connection.execute.return_value = "INSERT 0 0"
        store = PostgresSnapshotStore(pool_getter)

        assert await store.put(make_snapshot(audit(language_listing))) is False

    @pytest.mark.asyncio
    async def test_get_latest_parses_row(self, audit, language_listing, pool_getter, mock_connection) -> None:
        record = make_snapshot(audit(language_listing))
        mock_connection.fetchrow.return_value = {
            "subject_id": record.subject_id,
            "audit_timestamp": record.audit_timestamp,
            "content_hash": record.content_hash,
            "result": record.result.model_dump_json(),
        }
        store = PostgresSnapshotStore(pool_getter)

        assert await store.get_latest("app-lingo") == record

    @pytest.mark.asyncio
    async def test_list_passes_range(self, pool_getter, mock_connection) -> None:
        mock_connection.fetch.return_value = []
        store = PostgresSnapshotStore(pool_getter)
        end = T0 + timedelta(days=1)

        assert await store.list("app-lingo", T0, end) == []

        args = mock_connection.fetch.call_args.args
        assert "audit_timestamp >= $2" in args[0]
        assert "audit_timestamp <= $3" in args[0]
        assert args[1:] == ("app-lingo", T0, end)

    @pytest.mark.asyncio
    async def test_database_errors_raise_store_error(self, audit, language_listing, pool_getter, mock_connection) -> None:
        mock_connection.execute.side_effect = asyncpg.PostgresError("disk full")
        mock_connection.fetchrow.side_effect = OSError("connection reset")
        store = PostgresSnapshotStore(pool_getter)

        with pytest.raises(SnapshotStoreError):
            await store.put(make_snapshot(audit(language_listing)))
        with pytest.raises(SnapshotStoreError):
            await store.get_latest("app-lingo")
