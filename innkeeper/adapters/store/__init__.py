"""Store adapters implementing the unit of work and its stores.

Implementations support multiple backends:
- SQLite (zero-config, single-file)
- PostgreSQL (row-level locking, production use)
"""
