import subprocess

import pytest
from fastapi.testclient import TestClient

from conftest import FakeAgent, FakeChannel
from rackctl.api.main import app
from rackctl.api.routes.cluster import bring_up_lock, get_orchestrator
from rackctl.config import Config
from rackctl.modules.orchestrator import ClusterOrchestrator

HEADERS = {"X-API-Key": Config.API_KEY}


@pytest.fixture
def state():
    return {"channel": FakeChannel(), "validation_code": 0, "hooked": []}


@pytest.fixture
def client(options, state, monkeypatch):
    monkeypatch.delenv("KUBE_USER", raising=False)
    monkeypatch.delenv("KUBE_PASSWORD", raising=False)

    def orchestrator():
        return ClusterOrchestrator(
            options,
            channel=state["channel"],
            agent_factory=FakeAgent,
            prereq_check=lambda: None,
            readiness_hook=lambda host, daemon: state["hooked"].append((host.ip, daemon)),
            validation_runner=lambda argv, **kw: subprocess.CompletedProcess(argv, state["validation_code"]),
        )

    app.dependency_overrides[get_orchestrator] = orchestrator
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_requires_api_key(client):
    response = client.get("/cluster/topology")
    assert response.status_code == 403
    assert response.json() == {"detail": "Unauthorized"}


def test_topology(client):
    response = client.get("/cluster/topology", headers=HEADERS)
    assert response.status_code == 200
    body = response.json()
    assert body["master"] == {"address": "root@10.0.0.1", "ip": "10.0.0.1"}
    assert [n["ip"] for n in body["nodes"]] == ["10.0.0.2", "10.0.0.3"]


def test_up_redacts_password(client):
    response = client.post("/cluster/up", json={"parallel": 2}, headers=HEADERS)
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "success"
    assert body["server"] == "http://10.0.0.1:8080"
    assert body["user"] == "admin"
    assert body["password"] == "[REDACTED]"


def test_up_with_parallel_keeps_readiness_hook(client, state):
    response = client.post("/cluster/up", json={"parallel": 2}, headers=HEADERS)
    assert response.json()["status"] == "success"
    assert ("10.0.0.1", "etcd") in state["hooked"]
    assert ("10.0.0.3", "kube-proxy") in state["hooked"]


def test_up_rejected_while_another_is_running(client, state):
    assert bring_up_lock.acquire(blocking=False)
    try:
        response = client.post("/cluster/up", json={}, headers=HEADERS)
    finally:
        bring_up_lock.release()
    assert response.status_code == 409
    assert state["channel"].calls == []


def test_up_releases_lock_after_failure(client, state):
    state["channel"] = FakeChannel(fail_when=lambda host, script: "etcd.sh" in script)
    response = client.post("/cluster/up", json={}, headers=HEADERS)
    assert response.json()["status"] == "error"
    assert not bring_up_lock.locked()

    state["channel"] = FakeChannel()
    response = client.post("/cluster/up", json={}, headers=HEADERS)
    assert response.json()["status"] == "success"


def test_validate(client):
    response = client.post("/cluster/validate", headers=HEADERS)
    assert response.json() == {"status": "success", "health": "healthy", "diagnostics": {}}


def test_validate_failure_reports_daemon_status(client, state):
    state["validation_code"] = 1
    state["channel"] = FakeChannel(fail_when=lambda host, script: "is-active kubelet" in script)

    body = client.post("/cluster/validate", headers=HEADERS).json()

    assert body["status"] == "error"
    assert body["health"] == "unhealthy"
    diagnostics = body["diagnostics"]
    assert list(diagnostics) == ["root@10.0.0.1", "root@10.0.0.2", "root@10.0.0.3"]
    assert diagnostics["root@10.0.0.1"]["kube-apiserver"] == "active"
    assert diagnostics["root@10.0.0.2"]["kubelet"] == "inactive"
    assert diagnostics["root@10.0.0.3"]["kube-proxy"] == "active"


def test_down_not_supported(client):
    response = client.post("/cluster/down", headers=HEADERS)
    assert response.status_code == 501
