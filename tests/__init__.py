"""
Datastore SDK Test Suite.

This package contains:
- unit/: Unit tests (values, keys, entities, queries, config, in-memory store)
- integration/: Client, batch and transaction flows against InMemoryRemoteStore
"""
