"""
Component Test Mocks

Shared mock implementations for component testing.
These mocks replace real I/O dependencies (database).
"""

from .db_mock import MockAsyncPostgresClient

# Service-specific mocks should be in tests/component/{service}/conftest.py

__all__ = [
    'MockAsyncPostgresClient',
]
