import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./test_kpi.db")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("WHATSAPP_ENABLED", "false")
os.environ.setdefault("WHATSAPP_SEND_DELAY_SECONDS", "0")

import pytest
from typing import AsyncGenerator
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

import app.models  # noqa: F401  registers every table on Base.metadata
from app.core.database import get_async_session
from app.core.security import create_access_token
from app.models.base import Base
from main import app

# Test database URL
TEST_DATABASE_URL = "sqlite+aiosqlite://"


@pytest.fixture
async def engine():
    """Fresh in-memory database per test"""
    test_engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_maker(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(session_maker) -> AsyncGenerator[AsyncSession, None]:
    async with session_maker() as session:
        yield session


@pytest.fixture
async def client(session_maker) -> AsyncGenerator[AsyncClient, None]:
    """Create test client"""
    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_async_session] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers() -> dict:
    """Authentication headers for an admin token"""
    return {"Authorization": f"Bearer {create_access_token(1, 'admin')}"}


@pytest.fixture
def officer_headers() -> dict:
    """Authentication headers for a nodal officer token"""
    return {"Authorization": f"Bearer {create_access_token(2, 'nodal_officer')}"}


def template_payload(**overrides) -> dict:
    payload = {
        "name": "Health Worker KPI",
        "description": "Monthly targets for field health workers",
        "kpi_name": "Field work",
        "role": "health-worker",
        "frequency": "monthly",
        "department_slug": "health",
        "metrics": [
            {"name": "A", "max_marks": 60, "sub_metrics": [
                {"name": "Target", "key": "darj"},
                {"name": "Completed", "key": "nirakrit"},
            ]},
            {"name": "B", "max_marks": 40},
        ],
    }
    payload.update(overrides)
    return payload


def entry_payload(employee_id: int, template_id: int, a=(80, 100), b=45, **overrides) -> dict:
    payload = {
        "employee_id": employee_id,
        "template_id": template_id,
        "month": 9,
        "year": 2025,
        "metric_labels": [{"label": "Field work"}],
        "metric_values": [
            {"key": "A", "sub_metric_values": [
                {"key": "darj", "value": a[1]},
                {"key": "nirakrit", "value": a[0]},
            ]},
            {"key": "B", "value": b},
        ],
    }
    payload.update(overrides)
    return payload


@pytest.fixture
async def cohort(client, auth_headers):
    """A department, one template and three employees of its role"""
    await client.post(
        "/api/v1/organization/department/",
        json={"name": "Health", "slug": "health"},
        headers=auth_headers,
    )
    template = (await client.post("/api/v1/kpi/template/", json=template_payload(), headers=auth_headers)).json()

    employees = []
    for index, name in enumerate(["Asha", "Bina", "Chitra"]):
        response = await client.post(
            "/api/v1/hr/employee/",
            json={
                "name": name,
                "contact": {"email": f"{name.lower()}@example.com", "phone": f"98765 4321{index}"},
                "department": "health",
                "department_role": "health-worker",
            },
            headers=auth_headers,
        )
        employees.append(response.json())

    return {"template": template, "employees": employees}
