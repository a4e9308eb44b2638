"""
Workspace replication test suite.

This package contains:
- unit/: Unit tests (models, differ, store, workspace manager, config)
- integration/: Integration tests (replicator on SQLite, HTTP API, CLI)
"""
