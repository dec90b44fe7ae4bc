"""Tests for the dashboard API (wpdock.api) through FastAPI's TestClient."""

import dataclasses
import time

import httpx
import pytest
from fastapi.testclient import TestClient

from wpdock.api import create_app
from wpdock.deploy.tasks import TaskRunner
from wpdock.registry.activity import ActivityLog
from wpdock.registry.sites import JsonSiteRegistry, MemorySiteRegistry, SiteStatus

_RealAsyncClient = httpx.AsyncClient


@pytest.fixture(autouse=True)
def probe_ok(monkeypatch):
    """Site status probes answer 200 without leaving the process."""

    def _client(**kwargs):
        return _RealAsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(200)), **kwargs)

    monkeypatch.setattr("wpdock.deploy.orchestrate.httpx.AsyncClient", _client)


@pytest.fixture
def make_client(app_config, make_orchestrator):
    """Factory: a TestClient over an app whose orchestrator uses the given session."""
    clients = []

    def _make(session, sites=(), config=None, registry=None):
        if registry is None:
            registry = MemorySiteRegistry(list(sites))
        activity = ActivityLog()
        orchestrator = make_orchestrator(session, registry=registry, activity=activity)
        if config is not None:
            orchestrator.config = config
        app = create_app(
            config or app_config,
            orchestrator=orchestrator,
            registry=registry,
            activity=activity,
            runner=TaskRunner(),
        )
        client = TestClient(app)
        client.__enter__()
        clients.append(client)
        return client

    yield _make
    for client in clients:
        client.__exit__(None, None, None)


def _login(client, username="admin", password="admin-password"):
    response = client.post("/api/login", json={"username": username, "password": password})
    assert response.status_code == 200
    return {"Authorization": f"Bearer {response.json()['token']}"}


def _wait_task(client, headers, task_id, attempts=200):
    for _ in range(attempts):
        body = client.get(f"/api/tasks/{task_id}", headers=headers).json()
        if body["state"] != "running":
            return body
        time.sleep(0.01)
    raise AssertionError(f"task {task_id} still running")


# ── Auth ────────────────────────────────────────────────────────


def test_login_returns_token(make_client, fake_session):
    client = make_client(fake_session)

    response = client.post("/api/login", json={"username": "admin", "password": "admin-password"})

    assert response.status_code == 200
    assert response.json()["message"] == "Login successful!"
    assert response.json()["token"]


def test_login_wrong_password(make_client, fake_session):
    client = make_client(fake_session)

    response = client.post("/api/login", json={"username": "admin", "password": "nope"})

    assert response.status_code == 401
    assert response.json() == {"error": "Invalid credentials."}


def test_login_disabled_without_admin_password(make_client, fake_session, app_config):
    client = make_client(fake_session, config=dataclasses.replace(app_config, admin_password=""))

    response = client.post("/api/login", json={"username": "admin", "password": ""})

    assert response.status_code == 401


def test_routes_require_token(make_client, fake_session):
    client = make_client(fake_session)

    response = client.get("/api/sites")

    assert response.status_code == 401
    assert response.json() == {"error": "Authorization header required"}


def test_invalid_token_rejected(make_client, fake_session):
    client = make_client(fake_session)

    response = client.get("/api/activities", headers={"Authorization": "Bearer not-a-jwt"})

    assert response.status_code == 401
    assert response.json() == {"error": "Invalid token"}


def test_logout_revokes_token(make_client, fake_session):
    client = make_client(fake_session)
    headers = _login(client)
    assert client.get("/api/activities", headers=headers).status_code == 200

    response = client.post("/api/logout", headers=headers)

    assert response.json() == {"message": "Logout successful!"}
    after = client.get("/api/activities", headers=headers)
    assert after.status_code == 401
    assert after.json() == {"error": "Token revoked"}


def test_logout_without_token(make_client, fake_session):
    client = make_client(fake_session)
    assert client.post("/api/logout").json() == {"message": "Logout successful!"}


# ── Sites ───────────────────────────────────────────────────────


def test_create_site_json_runs_in_background(make_client, healthy_session):
    client = make_client(healthy_session)
    headers = _login(client)

    response = client.post(
        "/api/sites",
        headers=headers,
        json={"projectName": "demo", "adminUsername": "admin", "adminPassword": "SiteAdminPass1", "selectedPlugins": []},
    )

    assert response.status_code == 202
    body = response.json()
    assert body["message"] == "Site 'demo' creation initiated."
    assert body["site"]["projectName"] == "demo"
    assert body["site"]["status"] == "creating"
    assert "dbPassword" not in body["site"]
    assert "adminPassword" not in body["site"]

    task = _wait_task(client, headers, body["taskId"])
    assert task["state"] == "done"
    assert task["result"] is True

    site = client.get("/api/sites/demo", headers=headers).json()
    assert site["status"] == "active"
    assert site["siteURL"] == "http://203.0.113.10:8100"

    messages = [a["message"] for a in client.get("/api/activities", headers=headers).json()]
    assert "Site 'demo' creation initiated." in messages
    assert "Site 'demo' created successfully! URL: http://203.0.113.10:8100" in messages


def test_create_site_from_form(make_client, healthy_session):
    client = make_client(healthy_session)
    headers = _login(client)

    response = client.post(
        "/api/sites",
        headers=headers,
        data={
            "projectName": "demo",
            "adminUsername": "admin",
            "adminPassword": "SiteAdminPass1",
            "selectedPlugins": ["akismet", "hello-dolly"],
        },
    )

    assert response.status_code == 202
    assert response.json()["site"]["plugins"] == ["akismet", "hello-dolly"]
    _wait_task(client, headers, response.json()["taskId"])
    assert healthy_session.ran("plugin install akismet")
    assert healthy_session.ran("plugin install hello-dolly")


def test_create_site_duplicate(make_client, fake_session, make_site):
    client = make_client(fake_session, sites=[make_site("demo")])
    headers = _login(client)

    response = client.post(
        "/api/sites",
        headers=headers,
        json={"projectName": "demo", "adminUsername": "admin", "adminPassword": "SiteAdminPass1"},
    )

    assert response.status_code == 409
    assert "already exists" in response.json()["error"]


def test_create_site_invalid_name(make_client, fake_session):
    client = make_client(fake_session)
    headers = _login(client)

    response = client.post(
        "/api/sites",
        headers=headers,
        json={"projectName": "Bad Name; rm -rf /", "adminUsername": "admin", "adminPassword": "SiteAdminPass1"},
    )

    assert response.status_code == 400
    assert "Invalid project name" in response.json()["error"]
    assert fake_session.commands == []


def test_create_site_missing_fields(make_client, fake_session):
    client = make_client(fake_session)
    headers = _login(client)

    response = client.post("/api/sites", headers=headers, json={"projectName": "demo"})

    assert response.status_code == 400


def test_create_site_without_host_config(make_client, fake_session, app_config):
    client = make_client(fake_session, config=dataclasses.replace(app_config, host=None, missing_host_vars=["SSH_HOST"]))
    headers = _login(client)

    response = client.post(
        "/api/sites",
        headers=headers,
        json={"projectName": "demo", "adminUsername": "admin", "adminPassword": "SiteAdminPass1"},
    )

    assert response.status_code == 500
    assert response.json()["error"] == "Server is not configured."


def test_list_sites_refreshes_status(make_client, fake_session, make_site):
    sites = [make_site("demo", status=SiteStatus.DOWN), make_site("demo2", port=8101, status=SiteStatus.FAILED)]
    client = make_client(fake_session, sites=sites)
    headers = _login(client)

    body = client.get("/api/sites", headers=headers).json()

    assert [(s["projectName"], s["status"]) for s in body] == [("demo", "active"), ("demo2", "failed")]
    assert all("dbPassword" not in s for s in body)


def test_get_unknown_site(make_client, fake_session):
    client = make_client(fake_session)
    headers = _login(client)

    response = client.get("/api/sites/ghost", headers=headers)

    assert response.status_code == 404
    assert response.json()["error"] == "Site not found."


def test_corrupt_registry_is_500(make_client, fake_session, tmp_path):
    path = tmp_path / "sites.json"
    path.write_text("[{not json")
    client = make_client(fake_session, registry=JsonSiteRegistry(str(path)))
    headers = _login(client)

    response = client.get("/api/sites/demo", headers=headers)

    assert response.status_code == 500
    assert response.json()["error"] == "Site registry is unreadable."
    assert response.json()["details"]


def test_delete_site(make_client, fake_session, make_site):
    client = make_client(fake_session, sites=[make_site("demo")])
    headers = _login(client)

    first = client.delete("/api/sites/demo", headers=headers)
    second = client.delete("/api/sites/demo", headers=headers)

    assert first.json() == {"message": "Site deleted successfully!"}
    assert second.json() == {"message": "Site already deleted."}
    assert fake_session.ran("down -v --remove-orphans")


def test_restart_failure_is_500(make_client, fake_session, make_site):
    fake_session.fail(" restart", stderr="no such service")
    client = make_client(fake_session, sites=[make_site("demo")])
    headers = _login(client)

    response = client.post("/api/sites/demo/restart", headers=headers)

    assert response.status_code == 500
    assert response.json()["error"] == "Operation 'restart' failed for site 'demo'."
    assert "no such service" in response.json()["details"]


def test_plugins(make_client, fake_session, make_site):
    fake_session.on("plugin list", stdout='["akismet", "hello"]')
    client = make_client(fake_session, sites=[make_site("demo")])
    headers = _login(client)

    assert client.get("/api/sites/demo/plugins", headers=headers).json() == {"plugins": ["akismet", "hello"]}
    installed = client.post("/api/sites/demo/plugins/classic-editor", headers=headers)
    assert installed.json() == {"message": "Plugin classic-editor installed successfully!"}
    assert client.get("/api/sites/demo", headers=headers).json()["plugins"] == ["classic-editor"]
    removed = client.delete("/api/sites/demo/plugins/classic-editor", headers=headers)
    assert removed.json() == {"message": "Plugin classic-editor uninstalled successfully!"}


# ── Backups and tasks ───────────────────────────────────────────


def test_backup_task(make_client, fake_session, make_site):
    client = make_client(fake_session, sites=[make_site("demo")])
    headers = _login(client)

    response = client.post("/api/sites/demo/backups", headers=headers)

    assert response.status_code == 202
    task = _wait_task(client, headers, response.json()["taskId"])
    assert task["state"] == "done"
    assert task["result"].startswith("backup_")
    assert fake_session.ran("mariadb-dump")


def test_list_backups(make_client, fake_session, make_site):
    fake_session.on("ls -1t", stdout="backup_20240102030405.tar.gz\nnotes.txt\n")
    client = make_client(fake_session, sites=[make_site("demo")])
    headers = _login(client)

    response = client.get("/api/sites/demo/backups", headers=headers)

    assert response.json() == ["backup_20240102030405.tar.gz"]


def test_restore_unknown_site(make_client, fake_session):
    client = make_client(fake_session)
    headers = _login(client)

    response = client.post(
        "/api/sites/ghost/backups/restore", headers=headers, json={"backupFile": "backup_20240102030405.tar.gz"}
    )

    assert response.status_code == 404


def test_restore_failure_reported_on_task(make_client, fake_session, make_site):
    fake_session.fail("tar xzf", stderr="not in gzip format")
    client = make_client(fake_session, sites=[make_site("demo")])
    headers = _login(client)

    response = client.post(
        "/api/sites/demo/backups/restore", headers=headers, json={"backupFile": "backup_20240102030405.tar.gz"}
    )

    assert response.status_code == 202
    task = _wait_task(client, headers, response.json()["taskId"])
    assert task["state"] == "failed"
    assert "not in gzip format" in task["error"]


def test_unknown_task(make_client, fake_session):
    client = make_client(fake_session)
    headers = _login(client)

    response = client.get("/api/tasks/deadbeef", headers=headers)

    assert response.status_code == 404
    assert response.json() == {"error": "Task not found."}


# ── Host ────────────────────────────────────────────────────────


def test_vps_stats(make_client, fake_session):
    fake_session.on("top -bn1", stdout="12.5\n").on("free -m", stdout="40.0\n")
    client = make_client(fake_session)
    headers = _login(client)

    response = client.get("/api/vps/stats", headers=headers)

    assert response.json() == {"cpu_usage": 12.5, "ram_usage": 40.0}
    messages = [a["message"] for a in client.get("/api/activities", headers=headers).json()]
    assert messages == ["VPS stats requested."]


def test_vps_stats_unparseable(make_client, fake_session):
    fake_session.on("top -bn1", stdout="garbage\n").on("free -m", stdout="40.0\n")
    client = make_client(fake_session)
    headers = _login(client)

    response = client.get("/api/vps/stats", headers=headers)

    assert response.status_code == 500
    assert response.json()["error"] == "Host operation failed."


def test_activities_limit(make_client, fake_session, make_site):
    client = make_client(fake_session, sites=[make_site("demo")])
    headers = _login(client)
    client.post("/api/sites/demo/restart", headers=headers)
    client.delete("/api/sites/demo", headers=headers)

    body = client.get("/api/activities", headers=headers, params={"limit": 1}).json()

    assert [a["message"] for a in body] == ["Site 'demo' deleted successfully!"]
