"""Integration tests for adapter implementations.

These tests exercise adapters against temporary databases or mocked
connections to validate translation between core domain models and
storage formats.
"""
