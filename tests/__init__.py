"""
EntMap Test Suite.

This package contains:
- unit/: Unit tests (no external dependencies)
- integration/: Integration tests (EntityStore over the in-memory store)
- e2e/: End-to-end tests (DynamoDB Local, opt-in via ENTMAP_E2E_TESTS=1)
"""
