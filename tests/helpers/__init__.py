"""Helper functions and utilities for testing.

Database fixtures live in tests/conftest.py; this package holds the Docker
PostgreSQL container helper used by the integration tests.
"""
