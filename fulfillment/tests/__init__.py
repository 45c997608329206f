"""Test suite for the warehouse fulfillment engine.

Organized into three categories:

1. core/: Unit tests for core domain logic
   - Minimal dependencies, fast execution
   - Uses in-memory fakes for ports

2. adapters/: Integration tests for adapter implementations
   - SQLite against a temporary database file
   - PostgreSQL construction and row mapping without a server
   - Legacy gateway against the filesystem

3. fakes/: Port implementations for testing
   - In-memory implementations of the store ports and unit of work
   - Used by core unit tests
"""
