from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from smsgate.api import deps
from smsgate.core.config import settings
from smsgate.main import app
from smsgate.models.domain import SmsStatus

AUTH = (settings.admin_login, settings.admin_password)


@pytest.fixture
def client(engine):
    app.dependency_overrides[deps.get_dispatch_engine] = lambda: engine
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_health_ping(client):
    resp = client.get("/health/ping")

    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


def test_queue_requires_basic_auth(client):
    assert client.get("/sms-queue").status_code == 401
    assert client.get("/sms-queue", auth=(settings.admin_login, "wrong")).status_code == 401


def test_enqueue_and_list(client, make_message):
    message_id = make_message("Nagaduvannia")

    resp = client.post(
        "/sms-queue",
        json={"message_id": message_id, "phones": ["0671112233", "+7 916 000 00 00"]},
        auth=AUTH,
    )

    assert resp.status_code == 201
    body = resp.json()
    assert len(body["sms_ids"]) == 2
    assert body["blocked_phones"] == []

    listing = client.get("/sms-queue", params={"status": "waiting"}, auth=AUTH).json()
    assert listing["total"] == 2
    assert {item["phone"] for item in listing["items"]} == {"380671112233", "79160000000"}


def test_enqueue_unknown_message(client):
    resp = client.post("/sms-queue", json={"message_id": 9999, "phones": ["0671112233"]}, auth=AUTH)

    assert resp.status_code == 404


def test_enqueue_validates_payload(client, make_message):
    resp = client.post("/sms-queue", json={"message_id": make_message(), "phones": []}, auth=AUTH)

    assert resp.status_code == 422


def test_list_rejects_unknown_status(client):
    assert client.get("/sms-queue", params={"status": "lost"}, auth=AUTH).status_code == 422


def test_requeue_rejected_record(client, add_sms):
    (sms_id,) = add_sms(status=SmsStatus.REJECTED.value)

    resp = client.post(f"/sms-queue/{sms_id}/requeue", auth=AUTH)

    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "waiting"
    assert body["forced"] is True
    assert client.post("/sms-queue/424242/requeue", auth=AUTH).status_code == 404


def test_delete_single_and_all(client, add_sms):
    ids = add_sms(3)

    resp = client.delete(f"/sms-queue/{ids[0]}", auth=AUTH)
    assert resp.json() == {"deleted": 1}
    assert client.delete(f"/sms-queue/{ids[0]}", auth=AUTH).status_code == 404

    resp = client.delete("/sms-queue", auth=AUTH)
    assert resp.json() == {"deleted": 2}


def test_engine_state(client, engine, add_sms):
    add_sms(2)
    engine.admission_tick()

    body = client.get("/sms-queue/engine", auth=AUTH).json()

    assert body["pending"] == 2
    assert body["awaiting"] == 0
    assert body["active"] == {
        "sms_admission": True,
        "sms_dispatch": True,
        "sms_reconciliation": False,
    }


def test_health_db(client):
    resp = client.get("/health/db")

    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}
