"""Tests for REST API routes."""

from __future__ import annotations

import io
from pathlib import Path

import openpyxl
import pytest
from fastapi.testclient import TestClient

from policyvault.config import Settings
from policyvault.db.repositories import PolicyRepo, RecordStore, ScheduledMessageRepo
from policyvault.db.sqlite import SQLiteDB
from policyvault.ingestion.coordinator import IngestionCoordinator
from policyvault.ingestion.worker import IngestionWorker

COLLECTIONS = [
    "agents",
    "users",
    "accounts",
    "policy_categories",
    "policy_carriers",
    "policy_infos",
]


class BrokenStore:
    """Store whose every insert fails."""

    def insert_many(self, collection, records):
        raise RuntimeError("secret internal detail")


@pytest.fixture
def app_with_state(tmp_path):
    """Create a FastAPI app with test state."""
    from fastapi import FastAPI
    from policyvault.api.routes import router

    app = FastAPI()
    app.include_router(router)

    db = SQLiteDB(str(tmp_path / "test.db"))
    record_store = RecordStore(db)

    app.state.settings = Settings(DATABASE_DIR=str(tmp_path), SUPERVISOR_ENABLED=False)
    app.state.db = db
    app.state.record_store = record_store
    app.state.policy_repo = PolicyRepo(db)
    app.state.message_repo = ScheduledMessageRepo(db)
    app.state.coordinator = IngestionCoordinator(record_store, IngestionWorker(timeout=30.0))

    return app


@pytest.fixture
def client(app_with_state):
    return TestClient(app_with_state)


@pytest.fixture
def store(app_with_state) -> RecordStore:
    return app_with_state.state.record_store


def _upload(client: TestClient, filename: str, content: bytes):
    return client.post("/uploadfile", files={"file": (filename, io.BytesIO(content))})


# -- Upload endpoint -----------------------------------------------------------

def test_upload_csv_persists_all_collections(client, store):
    resp = _upload(client, "policies.csv", b"firstname,agent,policy_number\nAlice,Bob,P100\n")
    assert resp.status_code == 200
    assert resp.json() == {
        "message": "File uploaded and data saved successfully",
        "row_count": 1,
    }
    for collection in COLLECTIONS:
        assert store.count(collection) == 1
    assert store.list_all("users")[0]["first_name"] == "Alice"
    assert store.list_all("agents")[0]["agent_name"] == "Bob"


def test_upload_xlsx(client, store):
    wb = openpyxl.Workbook()
    ws = wb.active
    ws.append(["firstname", "company_name", "policy_amount"])
    ws.append(["Alice", "Acme", 120.0])
    ws.append(["Carol", "Globex", 80.0])
    buf = io.BytesIO()
    wb.save(buf)

    resp = _upload(client, "policies.XLSX", buf.getvalue())
    assert resp.status_code == 200
    assert resp.json()["row_count"] == 2
    assert [c["company_name"] for c in store.list_all("policy_carriers")] == ["Acme", "Globex"]


def test_upload_unsupported_type_rejected(client, store):
    resp = _upload(client, "notes.txt", b"hello")
    assert resp.status_code == 400
    assert "Unsupported file type" in resp.json()["detail"]
    for collection in COLLECTIONS:
        assert store.count(collection) == 0


def test_upload_without_file(client):
    resp = client.post("/uploadfile")
    assert resp.status_code == 400
    assert resp.json()["detail"] == "No file uploaded"


def test_upload_malformed_xlsx_is_500(client, store):
    resp = _upload(client, "broken.xlsx", b"definitely not a zip")
    assert resp.status_code == 500
    assert resp.json()["detail"] == "Internal server error"
    assert store.count("users") == 0


def test_upload_persistence_failure_does_not_leak_detail(app_with_state):
    app_with_state.state.coordinator = IngestionCoordinator(BrokenStore(), IngestionWorker())
    client = TestClient(app_with_state)

    resp = _upload(client, "policies.csv", b"firstname\nAlice\n")
    assert resp.status_code == 500
    assert "secret" not in resp.text


# -- Search endpoint -----------------------------------------------------------

def _seed(store: RecordStore) -> str:
    store.insert_many("users", [{"first_name": "Alice", "email": "alice@example.com"}])
    user_id = store.list_all("users")[0]["id"]
    store.insert_many("policy_carriers", [{"company_name": "Acme"}])
    carrier_id = store.list_all("policy_carriers")[0]["id"]
    store.insert_many("policy_infos", [
        {"policy_number": "P100", "user_ref": user_id, "carrier_ref": carrier_id, "policy_amount": 100.0},
        {"policy_number": "P200", "user_ref": user_id, "policy_amount": 25.5},
    ])
    return user_id


def test_search_user(client, store):
    user_id = _seed(store)
    resp = client.get("/search/Alice")
    assert resp.status_code == 200
    data = resp.json()
    assert data["message"] == "Fetch Successfully"
    assert data["user"]["id"] == user_id
    assert data["user"]["email"] == "alice@example.com"
    assert [p["policy_number"] for p in data["policy_info"]] == ["P100", "P200"]
    assert data["policy_info"][0]["carrier"]["company_name"] == "Acme"
    assert data["policy_info"][1]["carrier"] is None


def test_search_unknown_user(client):
    resp = client.get("/search/Nobody")
    assert resp.status_code == 404
    assert resp.json()["detail"] == "User not found"


def test_search_after_upload(client):
    """A user ingested through the upload endpoint is searchable."""
    _upload(client, "policies.csv", b"firstname,email\nDana,dana@example.com\n")
    resp = client.get("/search/Dana")
    assert resp.status_code == 200
    assert resp.json()["user"]["email"] == "dana@example.com"
    assert resp.json()["policy_info"] == []


# -- Aggregation endpoint ------------------------------------------------------

def test_aggregated_policy(client, store):
    user_id = _seed(store)
    resp = client.get("/aggregated-policy")
    assert resp.status_code == 200
    data = resp.json()
    assert data["message"] == "Fetch Successfully"
    assert data["result"] == [
        {
            "user_id": user_id,
            "user_name": "Alice",
            "policy_count": 2,
            "total_policy_amount": 125.5,
        }
    ]


def test_aggregated_policy_empty(client):
    resp = client.get("/aggregated-policy")
    assert resp.status_code == 200
    assert resp.json()["result"] == []


# -- Schedule endpoint ---------------------------------------------------------

def test_schedule_message(client, app_with_state):
    resp = client.post(
        "/schedule-message",
        json={"message": "Renewal due", "day": "2024-06-01", "time": "09:30"},
    )
    assert resp.status_code == 200
    data = resp.json()
    assert data["message"] == "Message scheduled and inserted"
    assert data["scheduled_time"] == "2024-06-01T09:30:00"

    stored = app_with_state.state.message_repo.list_all()
    assert [m["message"] for m in stored] == ["Renewal due"]


def test_schedule_message_invalid_time(client, app_with_state):
    resp = client.post(
        "/schedule-message",
        json={"message": "x", "day": "someday", "time": "later"},
    )
    assert resp.status_code == 400
    assert app_with_state.state.message_repo.list_all() == []


def test_schedule_message_missing_fields(client):
    resp = client.post("/schedule-message", json={"message": "x"})
    assert resp.status_code == 422
