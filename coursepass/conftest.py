import pytest

from coursepass.users.models import User
from coursepass.users.tests.factories import UserFactory


@pytest.fixture(autouse=True)
def _ensure_billing_plans(db) -> None:
    """
    Ensure the default Plans exist.

    Metering, checkout and the lifecycle manager all resolve limits and
    prices from the Plan table.
    """
    from coursepass.billing.plans import seed_default_plans

    seed_default_plans()


@pytest.fixture
def user(db) -> User:
    return UserFactory()
