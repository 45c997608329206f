"""Legacy system adapters.

Implementations:
- Store manager gateway (temp-file hand-off of committed store changes)
"""
