"""Command-line interface adapters.

Provides CLI commands for managing the fulfillment engine:
- warehouses: Create, archive, replace and inspect warehouses
- assignments: Link and unlink products, warehouses and stores
- stores: Create and update stores
"""
