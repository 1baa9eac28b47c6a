"""
turfwar Test Suite
==================

Test Organization
-----------------
- tests/unit/          : Fast unit tests with mocks (no external dependencies)
- tests/integration/   : Integration tests with testcontainers (real PostgreSQL)

Testing Philosophy
------------------
- Unit tests: fast, isolated, cover the gang rules and service decisions
- Integration tests: slower, cover locking and persistence
- Use pytest markers (unit, integration, database) to select tests
- Combat randomness is scripted, never seeded
"""
