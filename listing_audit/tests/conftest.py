"""
Pytest Configuration and Shared Fixtures for the Listing Audit Tests.

Provides:
- The default rule catalogue seeded into an in-memory rule store
- Merged rule sets for the base layer alone and for the language_learning vertical
- A deterministic audit clock and an AuditService wired to in-memory stores
- Sample listings used across the engine, snapshot and API tests
- Mock asyncpg pools for the PostgreSQL-backed stores

Async tests run under pytest-asyncio (asyncio_mode = "auto" in pyproject.toml).
"""

from datetime import datetime, timedelta, timezone
from typing import Callable, List
from unittest.mock import AsyncMock, MagicMock

import pytest

from listing_audit.core.config import Settings
from listing_audit.models import AuditContext, ListingMetadata, MergedRuleSet, RuleLayer
from listing_audit.services.audit import AuditService
from listing_audit.services.classifier import classify
from listing_audit.services.default_rules import (
    BASE_LAYER,
    LANGUAGE_LEARNING_LAYER,
    default_layers,
)
from listing_audit.services.kpi_registry import ListingPrimitives, build_primitives
from listing_audit.services.rule_resolver import RuleResolver, merge_rule_layers
from listing_audit.services.rule_store import InMemoryRuleStore
from listing_audit.services.snapshot import InMemorySnapshotStore
from listing_audit.services.tokenizer import generate_combos, tokenize_listing


# ============================================================
# PYTEST HOOKS
# ============================================================

def pytest_configure(config) -> None:
    """
    Register custom markers.

    - integration: tests that need a running PostgreSQL
    """
    config.addinivalue_line(
        'markers',
        'integration: marks tests requiring a PostgreSQL database'
    )


# ============================================================
# CLOCKS
# ============================================================

class SteppingClock:
    """Datetime clock that advances one minute per call."""

    def __init__(self, start: datetime, step: timedelta = timedelta(minutes=1)):
        self.current = start
        self.step = step

    def __call__(self) -> datetime:
        value = self.current
        self.current += self.step
        return value


class ManualClock:
    """Monotonic clock for TTL tests; advanced explicitly."""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def audit_clock() -> SteppingClock:
    return SteppingClock(datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def manual_clock() -> ManualClock:
    return ManualClock()


# ============================================================
# SETTINGS AND RULES
# ============================================================

@pytest.fixture
def test_settings() -> Settings:
    """Settings isolated from the environment's .env file."""
    return Settings(
        _env_file=None,
        database_url=None,
        rule_cache_ttl_seconds=300.0,
        default_locale='en-US',
        platform='ios',
        snapshot_dedup_enabled=True,
    )


@pytest.fixture
def catalogue() -> List[RuleLayer]:
    return default_layers()


@pytest.fixture
def rule_store(catalogue: List[RuleLayer]) -> InMemoryRuleStore:
    return InMemoryRuleStore(catalogue)


@pytest.fixture
def resolver(rule_store: InMemoryRuleStore, manual_clock: ManualClock) -> RuleResolver:
    return RuleResolver(rule_store, ttl_seconds=300.0, clock=manual_clock)


@pytest.fixture
def base_rules() -> MergedRuleSet:
    return merge_rule_layers([BASE_LAYER], AuditContext())


@pytest.fixture
def language_rules() -> MergedRuleSet:
    return merge_rule_layers(
        [BASE_LAYER, LANGUAGE_LEARNING_LAYER],
        AuditContext(vertical="language_learning"),
    )


# ============================================================
# SERVICE
# ============================================================

@pytest.fixture
def snapshot_store() -> InMemorySnapshotStore:
    return InMemorySnapshotStore()


@pytest.fixture
def audit_service(
    resolver: RuleResolver,
    snapshot_store: InMemorySnapshotStore,
    test_settings: Settings,
    audit_clock: SteppingClock,
) -> AuditService:
    return AuditService(
        resolver,
        snapshot_store=snapshot_store,
        settings=test_settings,
        clock=audit_clock,
    )


# ============================================================
# SAMPLE LISTINGS
# ============================================================

@pytest.fixture
def language_listing() -> ListingMetadata:
    """Scenario listing for the language_learning vertical."""
    return ListingMetadata(
        subject_id="app-lingo",
        title="Learn Spanish Fast",
        subtitle="Speak fluently in 30 days",
        description=(
            "Practice daily lessons and master Spanish grammar. "
            "Easy, fun and effective lessons help you speak with confidence."
        ),
        category="education",
        locale="en-US",
        brand_name="Lingo",
    )


@pytest.fixture
def productivity_listing() -> ListingMetadata:
    return ListingMetadata(
        subject_id="app-acme",
        title="Acme Planner 365",
        subtitle="Organize tasks and notes",
        description="Plan your day, track tasks and keep notes in one simple planner.",
        category="productivity",
        locale="en-US",
        brand_name="Acme",
    )


@pytest.fixture
def empty_listing() -> ListingMetadata:
    return ListingMetadata(subject_id="app-empty")


@pytest.fixture
def make_primitives() -> Callable[..., ListingPrimitives]:
    """Tokenize, classify and bundle a listing the way the audit pipeline does."""
    def _make(metadata: ListingMetadata, rule_set: MergedRuleSet, char_limits=(30, 30)) -> ListingPrimitives:
        tokens = tokenize_listing(metadata)
        combos = generate_combos(tokens, stopwords=rule_set.stopwords)
        scored, classified = classify(tokens, combos, rule_set, brand_name=metadata.brand_name)
        return build_primitives(metadata, scored, classified, rule_set, char_limits)
    return _make


# ============================================================
# ASYNCPG MOCKS
# ============================================================

@pytest.fixture
def mock_connection() -> AsyncMock:
    """asyncpg connection mock; configure fetchrow / fetch / execute per test."""
    conn = AsyncMock()
    conn.execute.return_value = "INSERT 0 1"
    return conn


@pytest.fixture
def mock_pool(mock_connection: AsyncMock) -> MagicMock:
    """Pool whose acquire() yields mock_connection as an async context manager."""
    pool = MagicMock()
    pool.acquire.return_value.__aenter__.return_value = mock_connection
    pool.acquire.return_value.__aexit__.return_value = False
    return pool


@pytest.fixture
def pool_getter(mock_pool: MagicMock) -> AsyncMock:
    return AsyncMock(return_value=mock_pool)
