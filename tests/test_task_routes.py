"""Tests for worker sweep routes."""

import os
from datetime import timedelta
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from staybook.api.factory import create_app

LOCAL_ENV = {"TASKS_OIDC_AUDIENCE": "staybook-tasks-local", "INTERNAL_TASK_SECRET": "s3cret"}
AUTH = {"X-Internal-Task-Secret": "s3cret"}


@pytest.fixture
def client():
    return TestClient(create_app(role="worker"))


class TestExpirePending:
    def test_requires_task_auth(self, client):
        with patch.dict(os.environ, LOCAL_ENV):
            response = client.post("/tasks/bookings/expire-pending")
        assert response.status_code == 401

    def test_disabled_without_ttl(self, client):
        env = {**LOCAL_ENV, "PENDING_BOOKING_TTL_MINUTES": ""}
        with patch.dict(os.environ, env), patch(
            "staybook.api.routes.tasks_bookings.expire_pending_bookings"
        ) as sweep:
            response = client.post("/tasks/bookings/expire-pending", headers=AUTH)
        assert response.json() == {"ok": True, "status": "disabled"}
        sweep.assert_not_called()

    def test_runs_with_ttl(self, client):
        env = {**LOCAL_ENV, "PENDING_BOOKING_TTL_MINUTES": "30"}
        with patch.dict(os.environ, env), patch(
            "staybook.api.routes.tasks_bookings.expire_pending_bookings",
            return_value={"status": "ok", "expired": 2, "skipped": 0},
        ) as sweep:
            response = client.post("/tasks/bookings/expire-pending", headers=AUTH)
        assert response.json() == {"ok": True, "status": "ok", "expired": 2, "skipped": 0}
        sweep.assert_called_once_with(timedelta(minutes=30))


class TestCompletePast:
    def test_runs(self, client):
        with patch.dict(os.environ, LOCAL_ENV), patch(
            "staybook.api.routes.tasks_bookings.complete_past_bookings",
            return_value={"status": "ok", "completed": 1, "skipped": 0},
        ):
            response = client.post("/tasks/bookings/complete-past", headers=AUTH)
        assert response.status_code == 200
        assert response.json()["completed"] == 1

    def test_secret_ignored_outside_local_dev(self, client):
        env = {"TASKS_OIDC_AUDIENCE": "https://worker.example.com", "INTERNAL_TASK_SECRET": "s3cret"}
        with patch.dict(os.environ, env):
            response = client.post("/tasks/bookings/complete-past", headers=AUTH)
        assert response.status_code == 401

    def test_not_mounted_on_public(self):
        client = TestClient(create_app(role="public"))
        assert client.post("/tasks/bookings/complete-past").status_code == 404
