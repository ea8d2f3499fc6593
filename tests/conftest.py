# ===============================================================================
# PYTEST CONFIGURATION FOR THE PROMOTIONS PLATFORM
# ===============================================================================
"""
Global test configuration.

Test Structure:
- tests/ mirrors apps/ structure for app-specific tests
- Naming convention: test_{app}_{feature}.py

Test Discovery:
- Run specific app tests: pytest tests/promotions/
- Run all tests: pytest tests/
"""

import os

import django


def pytest_configure():
    """Configure Django settings for pytest"""
    os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'config.settings.test')

    # Configure Django
    django.setup()

# ===============================================================================
# PYTEST FIXTURES
# ===============================================================================

import pytest  # noqa: E402


@pytest.fixture
def user(db):
    """Create test user"""
    from tests.factories.promotion_factories import create_user  # noqa: PLC0415

    return create_user('shopper')


@pytest.fixture
def staff_user(db):
    from tests.factories.promotion_factories import create_user  # noqa: PLC0415

    return create_user('staff', is_staff=True)


@pytest.fixture
def order(db, user):
    """Cart order with one 2 x 10.00 line item and a 5.00 shipment"""
    from tests.factories.promotion_factories import OrderCreationRequest, create_order  # noqa: PLC0415

    return create_order(OrderCreationRequest(user=user, shipment_costs=[500]))


@pytest.fixture
def authenticated_client(client, user):
    """Client logged in with test user"""
    client.force_login(user)
    return client
