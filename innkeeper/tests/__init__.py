"""Test suite for the Innkeeper booking system.

Organized into three categories:

1. core/: Unit tests for core domain logic
   - Minimal dependencies, fast execution
   - Uses in-memory fakes for ports

2. adapters/: Integration tests for adapter implementations
   - Tests against real SQLite files or mocked asyncpg/Redis clients
   - Validates adapter behavior and error handling

3. fakes/: Port implementations for testing
   - In-memory unit of work, availability cache, sweep port and clock
   - Used by core unit tests
"""
