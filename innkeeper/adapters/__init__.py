"""External adapters for the Innkeeper booking system.

This package contains all external dependencies (SQLite, PostgreSQL, Redis,
HTTP servers, etc.) and provides implementations of the core port interfaces.

Adapter Organization:

- store/: Unit of work and stores (SQLite, PostgreSQL)
- cache/: Available-unit count cache (in-memory, Redis)
- scheduler/: Daemon driving the expiry, completion and cache recovery jobs
- cli/: Command-line interface for operators
- api/: JSON HTTP API
- serialization: Model to JSON-ready dict conversion shared by cli/ and api/
"""
