"""HTTP tests for the gateway routes using FastAPI's TestClient."""

from __future__ import annotations

from unittest import mock
from urllib.parse import urlparse

import pytest
from fastapi.testclient import TestClient

from launchpad_gateway.app import create_app
from launchpad_gateway.config import config

API_KEY = "test-api-key"
LAUNCHPAD = {"Referer": "https://launchpad.example.com/portal"}
POWERLINK_1 = {"Referer": "https://powerlink1.example.com/run/page"}
POWERLINK_2 = {"Referer": "https://powerlink2.example.com/run/page"}
AUTH = {"Authorization": f"Bearer {API_KEY}", "X-Launchpad-User": "clerk"}


@pytest.fixture
def client(state):
    with mock.patch.object(config, "api_key", API_KEY):
        with TestClient(create_app(state)) as c:
            yield c


def _create_job(client, **body):
    payload = {
        "workflow": "wf-1",
        "customer": {"name": "Ada", "email": "ada@example.com"},
        "input": [{"key": "national_id", "value": "123"}],
        **body,
    }
    response = client.post("/api/jobs", json=payload, headers=AUTH)
    assert response.status_code == 201, response.text
    return response.json()["response"]


def _entry_path(created) -> str:
    """API path behind the customer access link: /api/jobs/{job_key}/{access_key}."""
    return "/api/jobs" + urlparse(created["customerAccessURL"]).path


def _task_key(location: str) -> str:
    return urlparse(location).path.rsplit("/", 1)[-1]


def test_health(client):
    response = client.get("/api/health")
    assert response.status_code == 200
    assert response.json()["store"] == "memory"


class TestJobsApi:
    def test_create_requires_api_key(self, client, catalog):
        catalog()
        response = client.post("/api/jobs", json={"workflow": "wf-1"})
        assert response.status_code == 401

    def test_create_job(self, client, catalog):
        catalog()
        created = _create_job(client)
        assert created["customerAccessURL"].startswith("https://launchpad.example.com/")
        assert created["accessPINCode"] is None
        assert set(created["notificationStatus"]) >= {"email", "sms", "whatsapp"}

    def test_create_with_bad_body(self, client, catalog):
        catalog()
        response = client.post("/api/jobs", json={"workflow": "wf-1", "language": "fr"}, headers=AUTH)
        assert response.status_code == 400
        assert response.json()["message"] == "Invalid request body"

    def test_create_for_unknown_workflow(self, client):
        response = client.post("/api/jobs", json={"workflow": "nope"}, headers=AUTH)
        assert response.status_code == 404
        assert response.json()["message"] == "Workflow not found"

    def test_create_for_inactive_workflow(self, client, catalog):
        catalog(workflow_active=False)
        response = client.post("/api/jobs", json={"workflow": "wf-1"}, headers=AUTH)
        assert response.status_code == 400
        assert response.json()["message"] == "Workflow is not active!"

    def test_cancel(self, client, catalog, state):
        catalog()
        created = _create_job(client)
        job_id = client.portal.call(state.repo.find_job, created["jobKey"]).id

        response = client.post(f"/api/jobs/{job_id}/cancel", json={"metadata": "ticket 7"}, headers=AUTH)
        assert response.status_code == 200
        assert response.json() == {"message": "Job cancelled successfully"}

        response = client.post(f"/api/jobs/{job_id}/cancel", headers=AUTH)
        assert response.status_code == 400
        assert response.json() == {"message": "Cancellation failed: the job is already canceled."}

    def test_start_from_foreign_origin(self, client, catalog):
        catalog()
        created = _create_job(client)
        response = client.post(
            f"{_entry_path(created)}/start",
            headers={"Referer": "https://evil.example.com/"},
            follow_redirects=False,
        )
        assert response.status_code == 403
        assert response.json()["message"] == "Invalid calling source URL."

    def test_start_with_wrong_access_key(self, client, catalog):
        catalog()
        created = _create_job(client)
        response = client.post(
            f"/api/jobs/{created['jobKey']}/not-the-key/start", headers=LAUNCHPAD, follow_redirects=False
        )
        assert response.status_code == 403
        assert response.json()["message"] == "Invalid access key."

    def test_start_unknown_job(self, client):
        response = client.post("/api/jobs/missing/start", headers=LAUNCHPAD, follow_redirects=False)
        assert response.status_code == 404

    def test_start_expired_job(self, client, catalog, clock):
        catalog()
        created = _create_job(client, valid_until=5)
        clock.advance(minutes=6)
        response = client.post(f"{_entry_path(created)}/start", headers=LAUNCHPAD, follow_redirects=False)
        assert response.status_code == 302
        assert response.headers["location"] == "/expired"


class TestCustomerFlow:
    def test_two_step_job_end_to_end(self, client, catalog, state):
        catalog(steps=2)
        created = _create_job(client)
        job_key = created["jobKey"]

        response = client.post(f"{_entry_path(created)}/start", headers=LAUNCHPAD, follow_redirects=False)
        assert response.status_code == 302
        location = response.headers["location"]
        assert location.startswith("https://powerlink1.example.com/run/")
        assert client.cookies.get(job_key)

        first = _task_key(location)
        response = client.post(f"/api/tasks/{first}/start", headers=POWERLINK_1)
        assert response.status_code == 200
        payload = response.json()
        assert payload["input"] == [
            {"key": "national_id", "value": "123", "type": None, "media": None, "description": None}
        ]
        assert {entry["key"] for entry in payload["config"]} == {"mode", "endpoint"}

        response = client.post(
            f"/api/tasks/{first}/submit",
            json={"output": [{"key": "verified", "value": "yes", "type": "TEXT"}]},
            headers=POWERLINK_1,
            follow_redirects=False,
        )
        assert response.status_code == 302
        assert response.headers["location"] == "https://launchpad.example.com"

        # Back on the launchpad the session cookie alone continues the job
        response = client.post(f"/api/jobs/{job_key}/start", headers=LAUNCHPAD, follow_redirects=False)
        second = _task_key(response.headers["location"])
        assert response.headers["location"].startswith("https://powerlink2.example.com/run/")

        response = client.post(f"/api/tasks/{second}/start", headers=POWERLINK_2)
        assert response.json()["input"][0]["key"] == "verified"
        client.post(
            f"/api/tasks/{second}/submit",
            json={"output": [{"key": "result", "value": "approved", "type": "TEXT"}]},
            headers=POWERLINK_2,
            follow_redirects=False,
        )

        response = client.post(f"/api/jobs/{job_key}/start", headers=LAUNCHPAD, follow_redirects=False)
        assert response.headers["location"] == "/done"
        job = client.portal.call(state.repo.find_job, job_key)
        assert job.status.value == "DONE"
        assert job.output[0].value == "approved"
        assert client.portal.call(state.repo.get_license, "lic-1").used == 1
        assert client.portal.call(state.repo.get_license, "lic-2").used == 1

    def test_task_call_from_wrong_origin(self, client, catalog):
        catalog()
        created = _create_job(client)
        response = client.post(f"{_entry_path(created)}/start", headers=LAUNCHPAD, follow_redirects=False)
        task_key = _task_key(response.headers["location"])
        response = client.post(f"/api/tasks/{task_key}/start", headers=LAUNCHPAD)
        assert response.status_code == 403

    def test_task_call_without_session(self, client, catalog):
        catalog()
        created = _create_job(client)
        response = client.post(f"{_entry_path(created)}/start", headers=LAUNCHPAD, follow_redirects=False)
        task_key = _task_key(response.headers["location"])
        client.cookies.clear()
        response = client.post(f"/api/tasks/{task_key}/start", headers=POWERLINK_1, follow_redirects=False)
        assert response.status_code == 302
        assert response.headers["location"] == "https://launchpad.example.com"

    def test_reject_ends_job(self, client, catalog, state):
        catalog(steps=2)
        created = _create_job(client)
        response = client.post(f"{_entry_path(created)}/start", headers=LAUNCHPAD, follow_redirects=False)
        task_key = _task_key(response.headers["location"])
        client.post(f"/api/tasks/{task_key}/start", headers=POWERLINK_1)

        response = client.post(
            f"/api/tasks/{task_key}/reject",
            json={"reason": "blurry photo"},
            headers=POWERLINK_1,
            follow_redirects=False,
        )
        assert response.status_code == 302

        response = client.post(f"/api/jobs/{created['jobKey']}/start", headers=LAUNCHPAD, follow_redirects=False)
        assert response.headers["location"] == "/rejected"
        job = client.portal.call(state.repo.find_job, created["jobKey"])
        assert job.status.value == "REJECTED"

    def test_submit_twice_conflicts(self, client, catalog):
        catalog()
        created = _create_job(client)
        response = client.post(f"{_entry_path(created)}/start", headers=LAUNCHPAD, follow_redirects=False)
        task_key = _task_key(response.headers["location"])
        client.post(f"/api/tasks/{task_key}/start", headers=POWERLINK_1)
        client.post(f"/api/tasks/{task_key}/submit", json={"output": []}, headers=POWERLINK_1, follow_redirects=False)

        response = client.post(
            f"/api/tasks/{task_key}/submit", json={"output": []}, headers=POWERLINK_1, follow_redirects=False
        )
        assert response.status_code == 409
        assert response.json()["message"] == "Invalid Task Status"

    def test_exhausted_quota_on_task_start(self, client, catalog, state):
        catalog()
        created = _create_job(client)
        response = client.post(f"{_entry_path(created)}/start", headers=LAUNCHPAD, follow_redirects=False)
        task_key = _task_key(response.headers["location"])
        client.portal.call(state.store.update, "licenses", "lic-1", {"used": 10})

        response = client.post(f"/api/tasks/{task_key}/start", headers=POWERLINK_1)
        assert response.status_code == 403
        assert response.json()["message"] == "No enough quota license for the requested powerLink!"


class TestPinLogin:
    def test_pin_challenge(self, client, catalog, state):
        catalog(requires_login=True, login_type="PIN")
        created = _create_job(client)
        path = f"{_entry_path(created)}/start"

        response = client.post(path, headers=LAUNCHPAD, follow_redirects=False)
        assert response.headers["location"] == "/login?type=PIN&error=Please+Enter+PIN"

        response = client.post(path, json={"input_login_code": "wrong"}, headers=LAUNCHPAD, follow_redirects=False)
        assert response.headers["location"] == "/login?type=PIN&error=Invalid+PIN"

        response = client.post(
            path, json={"input_login_code": created["accessPINCode"]}, headers=LAUNCHPAD, follow_redirects=False
        )
        assert response.headers["location"].startswith("https://powerlink1.example.com/run/")
        assert client.cookies.get(created["jobKey"])

        job = client.portal.call(state.repo.find_job, created["jobKey"])
        assert job.failed_login_trials == 0

    def test_lockout(self, client, catalog):
        catalog(requires_login=True, login_type="PIN")
        created = _create_job(client)
        path = f"{_entry_path(created)}/start"
        for _ in range(3):
            client.post(path, json={"input_login_code": "wrong"}, headers=LAUNCHPAD, follow_redirects=False)

        response = client.post(
            path, json={"input_login_code": created["accessPINCode"]}, headers=LAUNCHPAD, follow_redirects=False
        )
        assert response.headers["location"].startswith("/loginLocked?till=")
