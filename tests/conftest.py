"""
Root conftest.py - Global fixtures and configuration for all test layers.

Test Layers:
    - component/: Component tests (mocked dependencies)
    - unit/     : Unit tests (pure functions, no I/O)
"""
import os
import sys

import pytest

# Set testing environment BEFORE any service imports
os.environ.setdefault("ENV", "testing")
os.environ.setdefault("LOG_LEVEL", "WARNING")

# Add project root to path
PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, PROJECT_ROOT)

from tests.contracts.delivery.data_contract import DeliveryTestDataFactory


# =============================================================================
# Shared Fixtures
# =============================================================================

@pytest.fixture
def factory() -> DeliveryTestDataFactory:
    """Delivery test data factory"""
    return DeliveryTestDataFactory()
