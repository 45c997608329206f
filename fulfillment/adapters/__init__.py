"""External adapters for the warehouse fulfillment engine.

This package contains all external dependencies (SQLite, PostgreSQL, the
legacy store manager, the terminal) and provides implementations of the
core port interfaces.

Adapter Organization:

- store/: Persistence and unit of work (SQLite, PostgreSQL)
- legacy/: Propagation of store changes to the legacy store manager
- cli/: Command-line interface and management commands
"""
