"""Shared test configuration.

Environment overrides are applied before any ``agency_backend`` import so the
settings object picks them up.
"""

import os
import tempfile

os.environ["ENVIRONMENT"] = "test"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["EMAIL_API_URL"] = ""
os.environ["REDIS_URL"] = ""
os.environ["JWT_SECRET_KEY"] = "test-access-secret-key-0123456789"
os.environ["JWT_REFRESH_SECRET_KEY"] = "test-refresh-secret-key-0123456789"
os.environ["UPLOAD_DIR"] = tempfile.mkdtemp(prefix="agency-uploads-")

import httpx
import pytest
from mongomock_motor import AsyncMongoMockClient

from agency_backend.core.security import hash_password
from agency_backend.database.connection import init_db
from agency_backend.database.models import StaffUser
from agency_backend.main import app as fastapi_app
from agency_backend.schemas.enums import StaffRole
from tests.utils import DEFAULT_PASSWORD


@pytest.fixture(autouse=True)
async def db():
    client = AsyncMongoMockClient()
    database = await init_db(db=client["agency_test"])
    yield database


@pytest.fixture
def app():
    fastapi_app.dependency_overrides = {}
    yield fastapi_app
    fastapi_app.dependency_overrides = {}


@pytest.fixture
async def client(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as c:
        yield c


@pytest.fixture
def make_user():
    counter = {"n": 0}

    async def _make(role=StaffRole.SUPER_ADMIN, email=None, password=DEFAULT_PASSWORD, is_active=True, name=None):
        counter["n"] += 1
        user = StaffUser(
            name=name or f"{StaffRole(role).value} {counter['n']}",
            email=email or f"staff{counter['n']}@fafaligroup.org",
            password_hash=hash_password(password),
            role=role,
            is_active=is_active,
        )
        await user.insert()
        return user

    return _make


@pytest.fixture
async def super_admin(make_user):
    return await make_user(StaffRole.SUPER_ADMIN, email="admin@fafaligroup.org", name="Ama Mensah")


@pytest.fixture
async def visa_officer(make_user):
    return await make_user(StaffRole.VISA_OFFICER, email="officer@fafaligroup.org", name="Kofi Boateng")


@pytest.fixture
async def reviewer(make_user):
    return await make_user(StaffRole.REVIEWER, email="reviewer@fafaligroup.org", name="Esi Owusu")


@pytest.fixture
async def finance_officer(make_user):
    return await make_user(StaffRole.FINANCE_OFFICER, email="finance@fafaligroup.org", name="Yaw Asante")


@pytest.fixture
async def read_only(make_user):
    return await make_user(StaffRole.READ_ONLY, email="viewer@fafaligroup.org", name="Akua Darko")
