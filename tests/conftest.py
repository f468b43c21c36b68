"""
Pytest configuration and fixtures.

Unit tests run against tests.fakes.FakeEngine; integration tests (see
tests/integration/conftest.py) need a real PostgreSQL.
"""

from pathlib import Path
from typing import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient

from ehr.db.session import get_provisioner, get_tenant_router
from ehr.tenancy import TenantConnectionRouter, TenantSchemaProvisioner
from tests.fakes import FakeEngine
from tests.support import write_migrations


@pytest.fixture
def fake_engine() -> FakeEngine:
    return FakeEngine(pool_size=2)


@pytest.fixture
def router(fake_engine: FakeEngine) -> TenantConnectionRouter:
    return TenantConnectionRouter(fake_engine)


@pytest.fixture
def migrations_dir(tmp_path: Path) -> Path:
    return write_migrations(
        tmp_path / "migrations",
        {
            "001_core.sql": "CREATE TABLE patient (id INT PRIMARY KEY, mrn TEXT);",
            "002_encounters.sql": "CREATE TABLE encounter (id INT PRIMARY KEY);",
            "010_indexes.sql": "CREATE INDEX idx_patient_mrn ON patient (mrn);",
        },
    )


@pytest.fixture
def provisioner(fake_engine: FakeEngine, migrations_dir: Path) -> TenantSchemaProvisioner:
    return TenantSchemaProvisioner(fake_engine, migrations_dir)


@pytest.fixture
async def client(
    router: TenantConnectionRouter, provisioner: TenantSchemaProvisioner
) -> AsyncGenerator[AsyncClient, None]:
    """
    Test client with the tenancy services swapped for fake-engine ones.
    """
    from main import app

    app.dependency_overrides[get_tenant_router] = lambda: router
    app.dependency_overrides[get_provisioner] = lambda: provisioner

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c

    app.dependency_overrides.clear()
