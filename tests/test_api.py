import re

import pytest
from fastapi.testclient import TestClient

from tests.helpers import bring_up
from vsanlab.api import deps
from vsanlab.models import LabScenario
from vsanlab.service import app


@pytest.fixture
def client(plane):
    deps.set_control_plane(plane)
    yield TestClient(app)
    deps.set_control_plane(None)


def test_root(client):
    assert client.get("/").json()["service"] == "vsanlab"


def test_setup_wizard_over_http(client):
    assert client.get("/lab").json()["phase"] == "INTRO"
    assert client.post("/lab/scenario", json={"scenario": "STANDARD"}).status_code == 200
    assert client.post("/lab/cluster").status_code == 200

    response = client.post("/lab/cluster")
    assert response.status_code == 400

    response = client.post("/lab/hosts", json={"host_ids": ["h1", "h2"]})
    assert response.status_code == 400
    assert "minimum of 3 hosts" in response.json()["detail"]

    assert client.post("/lab/hosts", json={"host_ids": ["h1", "h2", "h3"]}).status_code == 200
    response = client.post("/hosts/h1/vsan-traffic")
    assert response.json()["status"] == "ok"
    assert client.get("/hosts/h1").json()["vsan_traffic_enabled"] is True

    response = client.post("/hosts/h1/disks/naa.5001/claim", json={"role": "Cache"})
    assert response.status_code == 200
    response = client.post("/hosts/h1/disks/naa.60011/claim", json={"role": "Cache"})
    assert response.status_code == 400


def test_unknown_entity_is_404(client):
    assert client.get("/hosts/h42").status_code == 404
    response = client.post("/failures", json={"kind": "HOST", "target_id": "h42"})
    assert response.status_code == 404


def test_bad_enum_is_422(client):
    response = client.post("/lab/scenario", json={"scenario": "HUGE"})
    assert response.status_code == 422


def test_failure_and_recovery_over_http(client, plane, scheduler):
    bring_up(plane, scheduler, LabScenario.STANDARD, ["h1", "h2", "h3"])
    assert client.post("/vms/deploy", json={"policy": "RAID1_FTT1"}).status_code == 200
    scheduler.run_until_idle()
    assert len(client.get("/vms").json()) == 12

    assert client.post("/failures", json={"kind": "HOST", "target_id": "h1"}).status_code == 200
    assert client.get("/health").json()["state"] == "Critical"

    response = client.post("/failures", json={"kind": "HOST", "target_id": "h2"})
    assert response.status_code == 409

    assert client.post("/failures/recover", json={"kind": "HOST", "target_id": "h1"}).status_code == 200
    assert client.get("/health").json()["state"] == "Resyncing"
    scheduler.run_until_idle()
    assert client.get("/health").json()["state"] == "Healthy"

    capacity = client.get("/capacity").json()
    assert capacity["consumed_gb"] == 5100
    assert capacity["raw_capacity_gb"] == 24000

    events = client.get("/events", params={"limit": 5}).json()
    assert len(events) == 5
    assert re.match(r"^\[\d{2}:\d{2}:\d{2}\] (INFO|ERROR) \| ", events[0]["line"])


def test_maintenance_over_http(client, plane, scheduler):
    bring_up(plane, scheduler, LabScenario.STANDARD, ["h1", "h2", "h3"])
    client.post("/vms/deploy", json={})
    scheduler.run_until_idle()

    response = client.post("/maintenance/h1/enter", json={"mode": "EnsureAccessibility"})
    assert response.status_code == 200
    response = client.post("/maintenance/h2/enter", json={"mode": "EnsureAccessibility"})
    assert response.status_code == 409
    scheduler.run_until_idle()

    assert client.post("/maintenance/h1/upgrade").status_code == 200
    scheduler.run_until_idle()
    assert client.get("/hosts/h1").json()["version"] == "ESXi 8.0 U3"
    assert client.post("/maintenance/h1/exit").status_code == 200

    jobs = client.get("/lab/jobs").json()
    assert {j["kind"] for j in jobs} >= {"evacuation", "upgrade", "resync"}


def test_reset_over_http(client):
    client.post("/lab/scenario", json={"scenario": "ROBO"})
    assert client.post("/lab/reset").status_code == 200
    assert client.get("/lab").json()["scenario"] == "STANDARD"
    assert len(client.get("/hosts").json()) == 7
