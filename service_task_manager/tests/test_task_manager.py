"""
Tests for Task Manager service.
"""

from typing import Any, Dict
from unittest.mock import AsyncMock, MagicMock

import boto3
import httpx
import pytest
from botocore.config import Config
from fastapi.testclient import TestClient

from service_task_manager.app.config import TaskManagerConfig
from service_task_manager.app.main import TaskManagerService
from service_task_manager.app.persistence import InMemoryTaskStore, TaskStore
from service_task_manager.app.storage import S3AttachmentStorage
from shared.errors import ExternalServiceError
from shared.test_helpers import (
    TEST_CLIENT_ID,
    TEST_ISSUER,
    bearer,
    create_claims,
    create_mock_users,
    jwks_document,
    jwks_transport,
)

FIXED_NOW = 1700000000.0
BUCKET = "test-bucket"


def _s3_client():
    return boto3.client(
        "s3",
        region_name="us-east-1",
        aws_access_key_id="testing",
        aws_secret_access_key="testing",
        config=Config(signature_version="s3v4"),
    )


def _config(**overrides) -> TaskManagerConfig:
    values = dict(
        task_store="memory",
        issuer=TEST_ISSUER,
        audience=TEST_CLIENT_ID,
        token_use="access",
        s3_bucket_name=BUCKET,
    )
    values.update(overrides)
    return TaskManagerConfig(**values)


def _service(key_cache, **kwargs) -> TaskManagerService:
    return TaskManagerService(
        _config(),
        task_store=kwargs.pop("task_store", None) or InMemoryTaskStore(),
        key_cache=key_cache,
        storage=kwargs.pop("storage", None) or S3AttachmentStorage(BUCKET, client=_s3_client(), clock=lambda: FIXED_NOW),
    )


@pytest.fixture
def task_manager_service(key_cache):
    """Create TaskManagerService instance for testing."""
    return _service(key_cache)


@pytest.fixture
def client(task_manager_service):
    """Test client with TaskManagerService."""
    return TestClient(task_manager_service.app)


@pytest.fixture
def users():
    return create_mock_users()


@pytest.fixture
def auth(key_a, users):
    """Authorization headers per mock user id."""
    return {user.user_id: bearer(key_a.sign(create_claims(user.user_id, email=user.email))) for user in users}


class TestTaskManagerService:
    """Test cases for TaskManagerService."""

    def _create(self, client: TestClient, headers: Dict[str, str], **payload: Any) -> Dict[str, Any]:
        payload.setdefault("title", "Write report")
        response = client.post("/tasks", json=payload, headers=headers)
        assert response.status_code == 201, response.text
        return response.json()

    def test_root(self, client):
        response = client.get("/")

        assert response.status_code == 200
        assert response.json()["service"] == "task-manager"

    def test_health_check(self, client):
        """Test health check endpoint."""
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["service"] == "task-manager"
        assert data["status"] == "ok"
        assert data["dependencies"] == {"jwks": "ok", "task_store": "ok", "attachments": "ok"}

    def test_health_degraded_without_keys(self, cache_factory):
        cache = cache_factory(jwks_transport({"keys": []}))
        client = TestClient(_service(cache).app)

        data = client.get("/health").json()

        assert data["status"] == "degraded"
        assert data["dependencies"]["jwks"] == "empty"

    def test_metrics_endpoint(self, client, auth):
        client.get("/tasks", headers=auth["user1"])

        response = client.get("/metrics")

        assert response.status_code == 200
        assert "token_verifications_total" in response.text
        assert 'endpoint="/tasks"' in response.text

    @pytest.mark.parametrize("method,path,body", [
        ("GET", "/tasks", None),
        ("POST", "/tasks", {"title": "x"}),
        ("PUT", "/tasks/1", {"title": "x"}),
        ("DELETE", "/tasks/1", None),
        ("POST", "/s3-upload-url", {"fileName": "a.txt", "fileType": "text/plain"}),
    ])
    def test_missing_token_never_reaches_collaborators(self, task_manager_service, method, path, body):
        store = AsyncMock(spec=TaskStore)
        storage = MagicMock(spec=S3AttachmentStorage)
        task_manager_service.task_store = store
        task_manager_service.storage = storage
        client = TestClient(task_manager_service.app)

        response = client.request(method, path, json=body)

        assert response.status_code == 401
        assert response.json()["code"] == "MISSING_TOKEN"
        assert store.mock_calls == []
        assert storage.mock_calls == []

    def test_rejected_tokens_share_one_response(self, task_manager_service, key_a, key_b):
        """Rejections are indistinguishable to the client and never reach the store."""
        store = AsyncMock(spec=TaskStore)
        task_manager_service.task_store = store
        client = TestClient(task_manager_service.app)
        tokens = [
            "garbage",
            key_b.sign(create_claims("user1")),
            key_a.sign(create_claims("user1", expires_in=-60)),
            key_a.sign(create_claims("user1", issuer="https://evil.example.com")),
            key_a.sign(create_claims("user1"), alg="RS512"),
        ]

        bodies = []
        for token in tokens:
            response = client.get("/tasks", headers=bearer(token))
            assert response.status_code == 403
            body = response.json()
            bodies.append((body["code"], body["message"], body["details"]))

        assert all(body == ("INVALID_TOKEN", "Invalid or expired token", {}) for body in bodies)
        assert store.mock_calls == []

    def test_create_and_list_tasks(self, client, auth):
        created = self._create(
            client,
            auth["user1"],
            title="Write report",
            description="Quarterly numbers",
            dueDate="2024-12-31",
            priority="high",
        )

        assert created["user_id"] == "user1"
        assert created["due_date"] == "2024-12-31"
        assert created["completed"] is False
        assert created["upload_url"] is None

        response = client.get("/tasks", headers=auth["user1"])
        assert response.status_code == 200
        assert [task["id"] for task in response.json()] == [created["id"]]

    def test_list_newest_first(self, client, auth):
        first = self._create(client, auth["user1"], title="first")
        second = self._create(client, auth["user1"], title="second")

        ids = [task["id"] for task in client.get("/tasks", headers=auth["user1"]).json()]

        assert ids == [second["id"], first["id"]]

    def test_create_requires_title(self, client, auth):
        response = client.post("/tasks", json={"description": "no title"}, headers=auth["user1"])

        assert response.status_code == 422

    def test_partial_update_keeps_other_fields(self, client, auth):
        task = self._create(client, auth["user1"], title="Write report", priority="low")

        response = client.put(f"/tasks/{task['id']}", json={"completed": True}, headers=auth["user1"])

        assert response.status_code == 200
        updated = response.json()
        assert updated["completed"] is True
        assert updated["title"] == "Write report"
        assert updated["priority"] == "low"

    def test_delete_task(self, client, auth):
        task = self._create(client, auth["user1"])

        response = client.delete(f"/tasks/{task['id']}", headers=auth["user1"])

        assert response.status_code == 204
        assert client.get("/tasks", headers=auth["user1"]).json() == []
        assert client.delete(f"/tasks/{task['id']}", headers=auth["user1"]).status_code == 404

    def test_subjects_are_isolated(self, client, auth):
        """Each subject only ever sees and changes its own tasks."""
        own = self._create(client, auth["user1"], title="user1 task")
        self._create(client, auth["user1"], title="user1 second task")
        other = self._create(client, auth["user2"], title="user2 task")

        user1_tasks = client.get("/tasks", headers=auth["user1"]).json()
        user2_tasks = client.get("/tasks", headers=auth["user2"]).json()

        assert {task["user_id"] for task in user1_tasks} == {"user1"}
        assert [task["id"] for task in user2_tasks] == [other["id"]]

        response = client.put(f"/tasks/{own['id']}", json={"title": "hijacked"}, headers=auth["user2"])
        assert response.status_code == 404
        assert response.json()["detail"] == "Task not found or not owned by user"
        assert client.delete(f"/tasks/{own['id']}", headers=auth["user2"]).status_code == 404

        titles = {task["title"] for task in client.get("/tasks", headers=auth["user1"]).json()}
        assert "user1 task" in titles

    def test_subject_comes_from_token_not_body(self, client, auth):
        task = self._create(client, auth["user1"], title="mine", user_id="user2")

        assert task["user_id"] == "user1"

    def test_create_with_attachment(self, client, auth):
        task = self._create(client, auth["user1"], title="With file", attachmentFileName="report.pdf")

        key = f"user1/attachments/{int(FIXED_NOW * 1000)}-report.pdf"
        assert task["attachment_url"] == f"https://{BUCKET}.s3.amazonaws.com/{key}"
        assert f"/{key}?" in task["upload_url"]
        assert "X-Amz-Expires=300" in task["upload_url"]

    def test_update_with_attachment(self, client, auth):
        task = self._create(client, auth["user1"])

        response = client.put(
            f"/tasks/{task['id']}",
            json={"attachmentFileName": "notes.txt"},
            headers=auth["user1"],
        )

        assert response.status_code == 200
        assert response.json()["attachment_url"].endswith("-notes.txt")
        assert response.json()["upload_url"]

    def test_upload_url(self, client, auth):
        response = client.post(
            "/s3-upload-url",
            json={"fileName": "photo.png", "fileType": "image/png"},
            headers=auth["user1"],
        )

        assert response.status_code == 200
        data = response.json()
        assert set(data) == {"uploadUrl", "fileUrl"}
        assert data["fileUrl"] == f"https://{BUCKET}.s3.amazonaws.com/user1/attachments/{int(FIXED_NOW * 1000)}-photo.png"

    def test_upload_url_stays_under_caller_prefix(self, client, auth):
        response = client.post(
            "/s3-upload-url",
            json={"fileName": "../user2/attachments/evil.sh"},
            headers=auth["user1"],
        )

        assert response.status_code == 200
        assert "/user1/attachments/" in response.json()["fileUrl"]
        assert "user2" not in response.json()["fileUrl"]

    def test_upload_url_without_bucket(self, key_cache, auth):
        service = _service(key_cache, storage=S3AttachmentStorage(None, client=_s3_client()))
        client = TestClient(service.app)

        response = client.post("/s3-upload-url", json={"fileName": "a.txt"}, headers=auth["user1"])

        assert response.status_code == 500
        assert response.json()["code"] == "EXTERNAL_SERVICE_ERROR"

    def test_store_failure_hides_details(self, task_manager_service, auth):
        store = AsyncMock(spec=TaskStore)
        store.list_tasks.side_effect = ExternalServiceError(
            "postgres", "Failed to fetch tasks", {"error": "password authentication failed"}
        )
        task_manager_service.task_store = store
        client = TestClient(task_manager_service.app)

        response = client.get("/tasks", headers=auth["user1"])

        assert response.status_code == 500
        body = response.json()
        assert body["code"] == "EXTERNAL_SERVICE_ERROR"
        assert body["message"] == "Internal server error"
        assert body["details"] == {}
        assert "password" not in response.text
        assert "postgres" not in response.text
        store.list_tasks.assert_awaited_once_with("user1")

    @pytest.mark.parametrize("header", ["Basic dXNlcjpwYXNz", "Token abc"])
    def test_missing_token_body_has_no_details(self, client, header):
        response = client.get("/tasks", headers={"Authorization": header})

        assert response.status_code == 401
        body = response.json()
        assert (body["code"], body["message"], body["details"]) == (
            "MISSING_TOKEN",
            "Authentication token required",
            {},
        )

    def test_request_id_propagates(self, client, auth):
        response = client.get("/tasks", headers={**auth["user1"], "X-Request-Id": "req-123"})

        assert response.headers["X-Request-Id"] == "req-123"

    def test_rotated_key_accepted_through_api(self, cache_factory, install_keys, key_a, key_b):
        cache = cache_factory(jwks_transport(jwks_document(key_a, key_b)))
        install_keys(cache, jwks_document(key_a))
        client = TestClient(_service(cache).app)

        response = client.get("/tasks", headers=bearer(key_b.sign(create_claims("user1"))))

        assert response.status_code == 200
        assert "kid-B" in cache.snapshot

    def test_startup_without_keys_fails_closed(self, cache_factory, key_a):
        """The service starts when the key endpoint is down but rejects every token."""
        cache = cache_factory(jwks_transport([httpx.ConnectError("connection refused")]))
        service = _service(cache)

        with TestClient(service.app) as client:
            assert client.get("/health").json()["dependencies"]["jwks"] == "empty"
            response = client.get("/tasks", headers=bearer(key_a.sign(create_claims("user1"))))

        assert response.status_code == 403
        assert response.json()["code"] == "INVALID_TOKEN"
