"""
MedCheck Backend - Test Configuration (conftest.py)
===================================================

What:  Shared pytest fixtures for the whole suite.
How:   Environment variables are set before anything from `medcheck` is
       imported, so settings, the engine and the Gemini client are built
       against test values (SQLite, a fake key, a temp storage root).

Fixtures:
    mock_db_session     AsyncMock session (no real database)
    temp_storage        empty storage directory per test
    sample_png_bytes    smallest valid PNG
    sample_image_bytes  smallest valid JPEG
    user_id / other_user_id
    auth_headers        Bearer header with a token signed by the test secret
    test_client         HTTPX AsyncClient bound to the app; the database
                        dependency yields mock_db_session
"""

import os
import tempfile
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import inspect as sa_inspect

os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///./medcheck_test.db"
os.environ["GEMINI_API_KEY"] = "test-key-not-real"
os.environ["AUTH_JWT_SECRET"] = "test-secret-for-medcheck-tokens"
os.environ["STORAGE_ROOT"] = tempfile.mkdtemp(prefix="medcheck_test_")
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["DEFAULT_TIMEZONE"] = "UTC"

from jose import jwt  # noqa: E402

from medcheck.config import settings  # noqa: E402

TEST_SECRET = os.environ["AUTH_JWT_SECRET"]


def make_token(subject, secret: str = TEST_SECRET, expires_in: int = 3600, **claims) -> str:
    payload = {
        "sub": str(subject),
        "aud": settings.auth_jwt_audience,
        "exp": datetime.now(timezone.utc) + timedelta(seconds=expires_in),
    }
    payload.update(claims)
    return jwt.encode(payload, secret, algorithm=settings.auth_jwt_algorithm)


def apply_insert_defaults(obj, *args):
    """Fill the column defaults an INSERT would, so refreshed rows look persisted."""
    state = sa_inspect(obj, raiseerr=False)
    if state is None:
        return
    for prop in state.mapper.column_attrs:
        column = prop.columns[0]
        if getattr(obj, prop.key) is not None or column.default is None:
            continue
        value = column.default.arg
        if column.default.is_callable:
            value = value(None)
        setattr(obj, prop.key, value)


@pytest.fixture
def mock_db_session():
    """
    Usage:
        mock_db_session.execute.return_value = result_with(rows)
        await medication_service.list(mock_db_session, user_id)
    """
    session = AsyncMock()
    session.execute = AsyncMock()
    session.get = AsyncMock(return_value=None)
    session.flush = AsyncMock()
    session.refresh = AsyncMock(side_effect=apply_insert_defaults)
    session.delete = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.close = AsyncMock()
    session.add = MagicMock()
    return session


def result_with(rows):
    """A stand-in for the Result of `await session.execute(...)`."""
    result = MagicMock()
    result.scalars.return_value.all.return_value = list(rows)
    result.scalar_one_or_none.return_value = rows[0] if rows else None
    return result


@pytest.fixture
def temp_storage(tmp_path):
    storage_dir = tmp_path / "storage"
    storage_dir.mkdir()
    return str(storage_dir)


@pytest.fixture
def sample_png_bytes():
    """1x1 transparent PNG."""
    return bytes.fromhex(
        "89504e470d0a1a0a0000000d4948445200000001000000010806000000"
        "1f15c4890000000d49444154789c63000100000500010d0a2db40000000049454e44ae426082"
    )


@pytest.fixture
def sample_image_bytes():
    """Minimal JPEG: SOI + JFIF header + EOI. Passes MIME sniffing only."""
    return (
        b"\xff\xd8\xff\xe0\x00\x10JFIF\x00\x01\x01\x00\x00\x01\x00\x01\x00\x00"
        b"\xff\xd9"
    )


@pytest.fixture
def user_id():
    return uuid4()


@pytest.fixture
def other_user_id():
    return uuid4()


@pytest.fixture
def auth_headers(user_id):
    return {"Authorization": f"Bearer {make_token(user_id)}"}


@pytest_asyncio.fixture
async def test_client(mock_db_session):
    """
    Usage:
        async def test_health(test_client):
            response = await test_client.get("/health")
    """
    from medcheck.database import get_db_session
    from medcheck.main import app

    async def override_session():
        yield mock_db_session

    app.dependency_overrides[get_db_session] = override_session
    transport = ASGITransport(app=app)
    try:
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            yield client
    finally:
        app.dependency_overrides.clear()


def medication_row(user_id, **fields):
    """A persisted-looking Medication owned by `user_id`."""
    from medcheck.models.medication import Medication

    values = {
        "name": "Ibuprofen",
        "dosage": "200mg",
        "category": "otc",
        "is_prescription": False,
        "reminder_enabled": False,
        "reminder_times": [],
        "reminder_frequency": "daily",
        "reminder_days": [],
        "active": True,
    }
    values.update(fields)
    medication = Medication(user_id=user_id, **values)
    apply_insert_defaults(medication)
    return medication
