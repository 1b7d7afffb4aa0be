# ===============================================================================
# PYTEST CONFIGURATION FOR AUTOPARTS COMMERCE PLATFORM
# ===============================================================================
"""
Global test configuration for the Autoparts Commerce Platform.

Test Structure:
- tests/ mirrors apps/ structure for app-specific tests
- Naming convention: test_{app}_{feature}.py
- Builders for model rows live in tests/factories/

Run specific app tests: pytest tests/promotions/
"""

import pytest
from django.contrib.auth import get_user_model
from django.core.cache import cache

from tests.factories.catalog_factories import create_customer, create_merchant

User = get_user_model()


@pytest.fixture(autouse=True)
def clear_cache():
    """Pricing contexts are cached; start every test cold"""
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def admin_user(db):
    """Create staff user for admin actions"""
    return User.objects.create_user(
        username="admin_test",
        email="admin@autoparts.test",
        password="testpass123",
        is_staff=True,
    )


@pytest.fixture
def customer(db):
    """Normal (retail) customer"""
    return create_customer()


@pytest.fixture
def merchant(db):
    """Merchant (wholesale) customer"""
    return create_merchant()
