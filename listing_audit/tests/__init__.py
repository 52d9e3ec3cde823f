'''
Listing Audit Test Suite

Test Modules:
-------------
- test_tokenizer.py: normalization, locale-aware tokens, combo generation
- test_rule_resolver.py: layer merge precedence, warnings, TTL and single-flight cache
- test_classifier.py: token relevance, combo classes, intents and hooks
- test_kpi_engine.py: normalization directions, multipliers, family weights, degradation
- test_formula_engine.py: formula validation, formula types, weight overrides
- test_recommendations.py: triggering, severity ordering, template rendering
- test_snapshot.py: content hashing, snapshot stores, deduplication and diffs
- test_audit.py: the run_audit pipeline end to end
- test_database.py: asyncpg pool lifecycle and schema bootstrap
- test_api.py: FastAPI routers via TestClient

Running Tests:
--------------
    pip install -e ".[test]"
    pytest listing_audit/tests -v

Configuration:
--------------
See conftest.py for shared fixtures and test configuration.
'''

__all__ = []
