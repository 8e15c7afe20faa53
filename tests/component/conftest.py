"""
Component Test Layer Configuration

Structure:
    tests/component/
    ├── delivery/    Delivery service components
    └── mocks/       Mock implementations

Usage:
    pytest tests/component -v
    pytest tests/component/delivery -v
"""
import os
import sys

import pytest

# Add project root
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))

from tests.component.mocks import MockAsyncPostgresClient


# =============================================================================
# Pytest Configuration
# =============================================================================

def pytest_configure(config):
    """Configure custom markers"""
    config.addinivalue_line(
        "markers", "component: marks tests as component tests"
    )


# =============================================================================
# Shared Mock Fixtures
# =============================================================================

@pytest.fixture
def mock_db() -> MockAsyncPostgresClient:
    """Mock PostgreSQL client"""
    return MockAsyncPostgresClient()
