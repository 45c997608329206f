"""Store adapters for warehouses, assignments, products and stores.

Implementations support multiple backends:
- SQLite (zero-config, single-file)
- PostgreSQL (distributed, scalable)
"""
