import pytest
from rest_framework.test import APIClient

from hr_leave.rbac.cache import reset_auth_cache
from hr_leave.rbac.catalog import configure
from tests.factories import make_user


@pytest.fixture(autouse=True)
def _fresh_rbac_state():
    # Auth data is cached per user id and ids are reused between tests.
    configure()
    reset_auth_cache()
    yield
    reset_auth_cache()


@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def user(db):
    return make_user("employee", department="Engineering")
