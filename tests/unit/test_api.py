import pytest
from sqlalchemy import exc as sa_exc

from ehr.core.config import settings
from ehr.tenancy import MissingTenantContextError
from main import status_for
from tests.fakes import db_error


async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


# ── /tenants ─────────────────────────────────────────────────────────────────


async def test_onboard_tenant(client, fake_engine):
    response = await client.post("/tenants", json={"tenant_id": " sup_ab12 "})

    assert response.status_code == 201
    assert response.json() == {
        "tenant_id": "sup_ab12",
        "schema_name": "tenant_sup_ab12",
        "current_version": 10,
        "applied_versions": [1, 2, 10],
    }
    assert fake_engine.available == fake_engine.pool_size


async def test_onboard_rejects_injection(client, fake_engine):
    response = await client.post(
        "/tenants", json={"tenant_id": "; DROP SCHEMA public CASCADE; --"}
    )

    assert response.status_code == 400
    assert fake_engine.connections == []


async def test_onboard_reports_failed_migration(client, fake_engine):
    fake_engine.failures["CREATE TABLE encounter"] = db_error("syntax error")

    response = await client.post("/tenants", json={"tenant_id": "sup_ab12"})

    assert response.status_code == 500
    body = response.json()
    assert body["tenant_id"] == "sup_ab12"
    assert body["migration_version"] == 2


async def test_tenant_status(client, fake_engine):
    fake_engine.ledger = {1, 2}

    response = await client.get("/tenants/sup_ab12")

    assert response.status_code == 200
    assert response.json() == {
        "tenant_id": "sup_ab12",
        "schema_name": "tenant_sup_ab12",
        "current_version": 2,
    }


async def test_tenant_status_unknown(client, fake_engine):
    fake_engine.namespace_exists = False
    response = await client.get("/tenants/sup_ab12")
    assert response.status_code == 404


async def test_list_tenants(client, fake_engine):
    fake_engine.schemas = {"tenant_sup_cd34", "tenant_sup_ab12"}
    response = await client.get("/tenants")
    assert response.json() == ["tenant_sup_ab12", "tenant_sup_cd34"]


async def test_offboard_tenant(client, fake_engine):
    response = await client.delete("/tenants/sup_ab12")
    assert response.status_code == 204
    assert any("DROP SCHEMA" in s for s in fake_engine.statements)


async def test_offboard_failure_still_returns_no_content(client, fake_engine):
    fake_engine.failures["DROP SCHEMA"] = db_error("lock timeout")
    response = await client.delete("/tenants/sup_ab12")
    assert response.status_code == 204


async def test_offboard_invalid_tenant(client, fake_engine):
    response = await client.delete("/tenants/bad-id")
    assert response.status_code == 400
    assert fake_engine.connections == []


@pytest.mark.parametrize(
    "headers, expected",
    [({}, 401), ({"X-Admin-Key": "wrong"}, 401), ({"X-Admin-Key": "s3cret"}, 200)],
)
async def test_admin_key_guards_tenant_routes(client, monkeypatch, headers, expected):
    monkeypatch.setattr(settings, "ADMIN_API_KEY", "s3cret")
    response = await client.get("/tenants", headers=headers)
    assert response.status_code == expected


# ── /patients (tenant-scoped) ────────────────────────────────────────────────


async def test_patients_scope_lifecycle(client, fake_engine):
    response = await client.get("/patients", headers={"X-Tenant-ID": "sup_ab12"})

    assert response.status_code == 200
    assert response.json() == {"total": 0, "items": []}
    conn = fake_engine.connections[0]
    assert conn.params[0] == {"search_path": '"tenant_sup_ab12", public'}
    assert conn.params[1] == {"tenant_id": "sup_ab12"}
    assert conn.statements[-3:] == ["RESET search_path", "RESET app.current_tenant_id", "COMMIT"]
    assert fake_engine.available == fake_engine.pool_size


async def test_patients_requires_tenant_header(client, fake_engine):
    response = await client.get("/patients")
    assert response.status_code == 422
    assert fake_engine.connections == []


async def test_patients_invalid_tenant(client, fake_engine):
    response = await client.get("/patients", headers={"X-Tenant-ID": "a;b"})
    assert response.status_code == 400
    assert fake_engine.connections == []


async def test_patients_unknown_tenant(client, fake_engine):
    fake_engine.namespace_exists = False

    response = await client.get("/patients", headers={"X-Tenant-ID": "ghost"})

    assert response.status_code == 404
    assert response.json()["tenant_id"] == "ghost"
    assert fake_engine.available == fake_engine.pool_size


async def test_patients_database_unavailable(client, fake_engine):
    fake_engine.connect_error = OSError("connection refused")
    response = await client.get("/patients", headers={"X-Tenant-ID": "sup_ab12"})
    assert response.status_code == 503


async def test_patient_not_found_releases_connection(client, fake_engine):
    response = await client.get("/patients/MRN-1", headers={"X-Tenant-ID": "sup_ab12"})

    assert response.status_code == 404
    assert fake_engine.available == fake_engine.pool_size


async def test_duplicate_mrn_is_a_conflict(client, fake_engine):
    fake_engine.failures["INSERT INTO patient"] = sa_exc.IntegrityError(
        "<stmt>", {}, Exception("duplicate key value violates unique constraint")
    )

    response = await client.post(
        "/patients",
        headers={"X-Tenant-ID": "sup_ab12"},
        json={"mrn": "MRN-1", "first_name": "Ada", "last_name": "Lovelace"},
    )

    assert response.status_code == 409
    assert "MRN-1" in response.json()["detail"]
    assert fake_engine.available == fake_engine.pool_size


def test_missing_tenant_context_is_a_server_error():
    assert status_for(MissingTenantContextError("no scope")) == 500
