"""
HTTP adapter and CLI tests.
"""

import json

import pytest
from click.testing import CliRunner
from starlette.testclient import TestClient

from agentric_core import server
from agentric_core.server import ADMIN_TOKEN_HEADER, create_app, main


@pytest.fixture
def client(make_orchestrator):
    orchestrator = make_orchestrator()
    app = create_app(orchestrator, admin_token="s3cret")
    with TestClient(app) as test_client:
        yield test_client


class TestEndpoints:

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "operational"
        assert body["agents"]["immutable"] == 2

    def test_system_info(self, client):
        body = client.get("/api/v1/system/info").json()
        assert body["name"] == "AgentricAI University"
        assert body["agents"]["total"] == 11
        assert "admin_token" not in body["config"]["server"]

    def test_agents_status(self, client):
        agents = client.get("/api/v1/agents/status").json()["agents"]
        by_id = {a["id"]: a for a in agents}
        assert by_id["guardian"]["priority"] == 0
        assert by_id["guardian"]["immutable"] is True
        assert by_id["math"]["status"] == "active"

    def test_student_interact(self, client):
        response = client.post("/api/v1/student/interact",
                               json={"studentId": "s1", "interaction": {"content": "I feel sad today"}})
        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["department"] == "counseling"

    def test_student_interact_blocked(self, client):
        body = client.post("/api/v1/student/interact",
                           json={"studentId": "s1", "interaction": {"content": "my password"}}).json()
        assert body["success"] is False
        assert body["outcome"] == "rejected"

    def test_student_interact_missing_fields(self, client):
        response = client.post("/api/v1/student/interact", json={"studentId": "s1"})
        assert response.status_code == 400
        assert "interaction" in response.json()["error"]

    def test_invalid_json(self, client):
        response = client.post("/api/v1/admin/message", content=b"{not json",
                               headers={"content-type": "application/json"})
        assert response.status_code == 400

    def test_admin_message(self, client):
        response = client.post("/api/v1/admin/message", json={"source": "teacher", "message": "Great week"})
        assert response.status_code == 200
        assert response.json()["success"] is True

    def test_emergency_and_clear(self, client):
        body = client.post("/api/v1/emergency", json={"type": "student_distress", "data": {"studentId": "s1"}}).json()
        assert body["emergencyMode"] is True
        assert body["guardianNotified"] is True

        denied = client.post("/api/v1/emergency/clear", json={"clearedBy": "principal"},
                             headers={ADMIN_TOKEN_HEADER: "wrong"})
        assert denied.status_code == 401
        assert client.get("/health").json()["emergencyMode"] is True

        cleared = client.post("/api/v1/emergency/clear", json={"clearedBy": "principal", "reason": "resolved"},
                              headers={ADMIN_TOKEN_HEADER: "s3cret"})
        assert cleared.status_code == 200
        assert cleared.json()["cleared"] is True
        assert client.get("/health").json()["emergencyMode"] is False

    def test_metrics(self, client):
        client.post("/api/v1/admin/message", json={"source": "teacher", "message": "hi"})
        response = client.get("/metrics")
        assert response.status_code == 200
        assert "agentric_routings_total" in response.text

    def test_not_found(self, client):
        response = client.get("/api/v1/nothing")
        assert response.status_code == 404
        assert "error" in response.json()


class TestClearDisabled:

    def test_clear_disabled_without_token(self, make_orchestrator):
        app = create_app(make_orchestrator(), admin_token="")
        with TestClient(app) as client:
            client.post("/api/v1/emergency", json={"type": "fire"})
            response = client.post("/api/v1/emergency/clear", json={"clearedBy": "x"},
                                   headers={ADMIN_TOKEN_HEADER: ""})
            assert response.status_code == 403
            assert client.get("/health").json()["emergencyMode"] is True


class TestAdminUnavailable:

    def test_admin_agent_missing(self, make_orchestrator, registry_data):
        del registry_data["departmentalAgents"]["admin"]
        app = create_app(make_orchestrator(registry_data), admin_token="")
        with TestClient(app) as client:
            response = client.post("/api/v1/admin/message", json={"source": "parent", "message": "hi"})
            assert response.status_code == 503


class TestCli:

    @pytest.fixture(autouse=True)
    def quiet_logging(self, monkeypatch):
        monkeypatch.setattr(server, "configure_logging", lambda *args, **kwargs: None)

    def test_health_json(self, monkeypatch):
        monkeypatch.setenv("AGENTRIC_AGENT_REGISTRY", "")
        result = CliRunner().invoke(main, ["health", "--json"])
        assert result.exit_code == 0
        report = json.loads(result.stdout)
        assert report["status"] == "operational"
        assert report["agents"]["immutable"] == 2

    def test_health_text(self):
        result = CliRunner().invoke(main, ["health"])
        assert result.exit_code == 0
        assert "Orchestration Health" in result.stdout
