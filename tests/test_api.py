"""HTTP-level tests for the issue and agent endpoints."""
import pytest
from fastapi.testclient import TestClient

from grievance.access.infrastructure import issue_token
from grievance.config import Role
from grievance.main import create_app

from tests.conftest import JWT_SECRET


def auth(principal_id: str, role: Role, **claims) -> dict:
    token = issue_token(principal_id, role, secret=JWT_SECRET, **claims)
    return {"Authorization": f"Bearer {token}"}


REPORTER = auth("emp-1", Role.EMPLOYEE, email="emp1@example.com")
OTHER = auth("emp-2", Role.EMPLOYEE)
AGENT = auth("agent-a", Role.AGENT)
MANAGER = auth("mgr-1", Role.MANAGER)


@pytest.fixture
def client(container):
    app = create_app(container=container, start_background=False, configure_logging=False)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def issue_id(client):
    response = client.post(
        "/issues",
        json={"typeId": "payroll", "description": "Salary not credited", "priority": "high"},
        headers=REPORTER,
    )
    assert response.status_code == 201
    return response.json()["issue"]["id"]


@pytest.fixture
def agent(client):
    response = client.post("/agents", json={"agentId": "agent-a"}, headers=MANAGER)
    assert response.status_code == 201
    return response.json()


class TestAuthentication:

    def test_missing_token(self, client):
        response = client.get("/issues/whatever")

        assert response.status_code == 401
        assert response.json()["error_code"] == "UNAUTHENTICATED"

    def test_bad_token(self, client):
        response = client.get("/issues/whatever", headers={"Authorization": "Bearer not-a-jwt"})

        assert response.status_code == 401

    def test_wrong_secret(self, client):
        token = issue_token("mgr-1", Role.MANAGER, secret="another-secret")
        response = client.get("/agents/workload", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 401


class TestIssueFlow:

    def test_create_returns_issue_and_flags(self, client):
        response = client.post(
            "/issues",
            json={"type_id": "it", "description": "VPN down"},
            headers=REPORTER,
        )

        body = response.json()
        assert response.status_code == 201
        assert body["issue"]["status"] == "open"
        assert body["issue"]["priority"] == "medium"
        assert body["issue"]["reporter_id"] == "emp-1"
        assert body["sla"] == {
            "first_response_breached": False,
            "resolution_breached": False,
            "assignee_breached": False,
            "frozen": False,
        }
        assert response.headers["X-Correlation-ID"]

    def test_assign_work_and_resolve(self, client, issue_id, agent):
        assigned = client.post(f"/issues/{issue_id}/assign", json={"agentId": "agent-a"}, headers=MANAGER)
        assert assigned.status_code == 200
        assert assigned.json()["issue"]["assigned_to"] == "agent-a"

        working = client.patch(f"/issues/{issue_id}/status", json={"status": "in_progress"}, headers=AGENT)
        assert working.json()["issue"]["status"] == "in_progress"

        resolved = client.patch(
            f"/issues/{issue_id}/status",
            json={"status": "resolved", "resolutionNote": "Payroll re-run"},
            headers=AGENT,
        )
        body = resolved.json()
        assert body["issue"]["status"] == "resolved"
        assert body["issue"]["resolution_note"] == "Payroll re-run"
        assert body["sla"]["frozen"] is True

        workload = client.get("/agents/workload", headers=MANAGER).json()
        assert workload["total_load"] == 0

    def test_auto_assign(self, client, issue_id, agent):
        response = client.post(f"/issues/{issue_id}/auto-assign", headers=MANAGER)

        assert response.json()["issue"]["assigned_to"] == "agent-a"
        assert client.get("/agents/workload", headers=MANAGER).json()["agents"][0]["current_load"] == 1

    def test_auto_assign_without_agents(self, client, issue_id):
        response = client.post(f"/issues/{issue_id}/auto-assign", headers=MANAGER)

        assert response.status_code == 409
        assert response.json()["error_code"] == "NO_ELIGIBLE_AGENT"

    def test_invalid_transition_envelope(self, client, issue_id):
        response = client.patch(
            f"/issues/{issue_id}/status",
            json={"status": "closed", "resolutionNote": "dup"},
            headers=MANAGER,
        )

        body = response.json()
        assert response.status_code == 409
        assert body["error_code"] == "INVALID_TRANSITION"
        assert body["details"]["from_status"] == "open"
        assert body["details"]["to_status"] == "closed"
        assert body["correlation_id"] == response.headers["X-Correlation-ID"]

    def test_correlation_id_is_echoed(self, client, issue_id):
        response = client.get(f"/issues/{issue_id}", headers={**REPORTER, "X-Correlation-ID": "req-42"})

        assert response.headers["X-Correlation-ID"] == "req-42"

    def test_resolve_without_note(self, client, issue_id):
        response = client.patch(f"/issues/{issue_id}/status", json={"status": "resolved"}, headers=MANAGER)

        assert response.status_code == 422
        assert response.json()["error_code"] == "VALIDATION_ERROR"

    def test_body_validation_uses_same_envelope(self, client, issue_id):
        response = client.patch(f"/issues/{issue_id}/status", json={"status": "paused"}, headers=MANAGER)

        body = response.json()
        assert response.status_code == 422
        assert body["error_code"] == "VALIDATION_ERROR"
        assert body["details"]["errors"]

    def test_reporter_cannot_assign(self, client, issue_id, agent):
        response = client.post(f"/issues/{issue_id}/assign", json={"agentId": "agent-a"}, headers=REPORTER)

        assert response.status_code == 403
        assert response.json()["details"]["required"] == "manage:issues"

    def test_unknown_issue(self, client):
        response = client.get("/issues/missing", headers=MANAGER)

        assert response.status_code == 404
        assert response.json()["error_code"] == "NOT_FOUND"

    def test_escalate_and_reopen(self, client, issue_id):
        escalated = client.post(
            f"/issues/{issue_id}/escalate",
            json={"priority": "critical", "reason": "Exec complaint"},
            headers=MANAGER,
        )
        assert escalated.json()["issue"]["status"] == "escalated"
        assert escalated.json()["issue"]["escalation_level"] == 1

        again = client.post(
            f"/issues/{issue_id}/escalate",
            json={"priority": "critical", "reason": "Still"},
            headers=MANAGER,
        )
        assert again.json()["error_code"] == "ALREADY_MAX_PRIORITY"

        client.patch(f"/issues/{issue_id}/status", json={"status": "closed", "resolutionNote": "done"}, headers=MANAGER)
        reopened = client.post(f"/issues/{issue_id}/reopen", json={"reason": "Not fixed"}, headers=REPORTER)
        assert reopened.status_code == 200
        assert reopened.json()["issue"]["status"] == "open"
        assert reopened.json()["issue"]["reopen_count"] == 1


class TestComments:

    def test_channels_and_restriction(self, client, issue_id, agent):
        client.post(f"/issues/{issue_id}/assign", json={"agentId": "agent-a"}, headers=MANAGER)

        reply = client.post(f"/issues/{issue_id}/comments", json={"content": "Any update?"}, headers=REPORTER)
        note = client.post(
            f"/issues/{issue_id}/internal-comments", json={"content": "Ask finance"}, headers=AGENT
        )
        assert reply.status_code == 201
        assert note.json()["internal"] is True

        reporter_view = client.get(f"/issues/{issue_id}/comments", headers=REPORTER).json()
        assert reporter_view["internal"] == {"restricted": True, "comments": []}
        assert reporter_view["external"]["restricted"] is False
        assert [c["content"] for c in reporter_view["external"]["comments"]] == ["Any update?"]

        agent_view = client.get(f"/issues/{issue_id}/comments", headers=AGENT).json()
        assert [c["content"] for c in agent_view["internal"]["comments"]] == ["Ask finance"]

    def test_assignee_comment_returns_updated_issue_and_flags(self, client, issue_id, agent):
        client.post(f"/issues/{issue_id}/assign", json={"agentId": "agent-a"}, headers=MANAGER)
        client.post(
            f"/issues/{issue_id}/escalate",
            json={"priority": "critical", "reason": "Exec complaint"},
            headers=MANAGER,
        )

        response = client.post(
            f"/issues/{issue_id}/internal-comments", json={"content": "On it"}, headers=AGENT
        )

        body = response.json()
        assert response.status_code == 201
        assert body["content"] == "On it"
        assert body["issue"]["status"] == "in_progress"
        assert body["issue"]["assigned_to"] == "agent-a"
        assert body["sla"]["assignee_breached"] is False
        assert body["sla"]["frozen"] is False

    def test_listing_carries_flags_for_visible_issue(self, client, issue_id):
        reporter_view = client.get(f"/issues/{issue_id}/comments", headers=REPORTER).json()
        other_view = client.get(f"/issues/{issue_id}/comments", headers=OTHER).json()

        assert reporter_view["issue"]["id"] == issue_id
        assert reporter_view["sla"]["first_response_breached"] is False
        assert other_view["issue"] is None
        assert other_view["sla"] is None

    def test_reporter_cannot_post_internal(self, client, issue_id):
        response = client.post(
            f"/issues/{issue_id}/internal-comments", json={"content": "peek"}, headers=REPORTER
        )

        assert response.status_code == 403

    def test_other_employee_listing_is_restricted_not_forbidden(self, client, issue_id):
        response = client.get(f"/issues/{issue_id}/comments", headers=OTHER)

        assert response.status_code == 200
        assert response.json()["external"]["restricted"] is True
        assert response.json()["internal"]["restricted"] is True


class TestReadModels:

    def test_sla_view(self, client, issue_id):
        body = client.get(f"/issues/{issue_id}/sla", headers=REPORTER).json()

        assert body["first_response"]["threshold_minutes"] == 240
        assert body["first_response"]["state"] == "on_track"
        assert body["assignee_response"] is None
        assert body["overall"]["is_any_breached"] is False

    def test_audit_pagination(self, client, issue_id, agent):
        client.post(f"/issues/{issue_id}/assign", json={"agentId": "agent-a"}, headers=MANAGER)

        first = client.get(f"/issues/{issue_id}/audit", params={"limit": 1}, headers=MANAGER).json()
        second = client.get(
            f"/issues/{issue_id}/audit", params={"offset": first["next_offset"], "limit": 1}, headers=MANAGER
        ).json()

        assert [e["action"] for e in first["entries"]] == ["created"]
        assert first["next_offset"] == 1
        assert [e["action"] for e in second["entries"]] == ["assigned"]

    def test_audit_requires_manage_issues(self, client, issue_id):
        assert client.get(f"/issues/{issue_id}/audit", headers=AGENT).status_code == 403

    def test_agent_update(self, client, agent):
        response = client.patch(
            "/agents/agent-a", json={"isAvailable": False, "priorityCeiling": "high"}, headers=MANAGER
        )

        assert response.json()["is_available"] is False
        assert response.json()["priority_ceiling"] == "high"


class TestHealth:

    def test_health_reports_in_memory_store(self, client):
        body = client.get("/health").json()

        assert body["status"] == "healthy"
        assert body["checks"]["database"] == "in_memory"
        assert body["checks"]["sla_monitor"] == "stopped"

    def test_root(self, client):
        assert client.get("/").json()["health"] == "/health"
