import pytest
from werkzeug.security import generate_password_hash

from app.hosting import auth as auth_module, create_app
from app.hosting.constants import DEFAULT_REGISTRY_ID, ROOT_TEAM_ID
from app.hosting.crypto import decrypt
from app.hosting.db import session_scope
from app.hosting.models import AuditEvent, Base, Team, User
from app.hosting.modules.applications.models import Application
from app.hosting.modules.registries.models import DockerRegistry
from scripts.init_db import seed_platform


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    for k in ("ENCRYPTION_KEY", "PROXY_CONTAINER", "SENTRY_DSN"):
        monkeypatch.delenv(k, raising=False)

    app = create_app()
    auth_module._login_attempts.clear()
    Base.metadata.create_all(bind=app.extensions["sqlalchemy_engine"])

    with session_scope(app) as s:
        roles = seed_platform(s)
        s.add(Team(id="t1", name="Team One"))
        admin = User(email="admin@example.com", password_hash=generate_password_hash("pw"), is_active=True, team_id=ROOT_TEAM_ID)
        admin.roles.append(roles["admin"])
        member = User(email="member@example.com", password_hash=generate_password_hash("pw"), is_active=True, team_id="t1")
        member.roles.append(roles["member"])
        s.add_all([admin, member])
    return app


def _login(client, email="admin@example.com") -> dict:
    client.post("/auth/login", json={"email": email, "password": "pw"})
    token = client.get("/api/v1/user").json["csrfToken"]
    return {"X-CSRF-Token": token}


def test_add_private_registry_is_listed_for_owner_only(app):
    member = app.test_client()
    headers = _login(member, "member@example.com")
    payload = {"name": "GHCR", "url": "ghcr.io", "username": "bot", "password": "s3cret"}
    assert member.post("/api/v1/settings/registry/new", json=payload, headers=headers).status_code == 201

    with session_scope(app) as s:
        registry = s.query(DockerRegistry).filter(DockerRegistry.name == "GHCR").one()
        assert registry.team_id == "t1"
        assert registry.is_system_wide is False
        assert registry.password != "s3cret"
        assert decrypt(registry.password, secret="test-secret") == "s3cret"

    private = member.get("/api/v1/settings").json["registries"]["private"]
    assert [(r["name"], r["password"]) for r in private] == [("GHCR", "s3cret")]

    admin = app.test_client()
    _login(admin)
    assert admin.get("/api/v1/settings").json["registries"]["private"] == []


def test_only_root_team_adds_system_wide_registries(app):
    member = app.test_client()
    headers = _login(member, "member@example.com")
    r = member.post("/api/v1/settings/registry/new", json={"name": "Quay", "url": "quay.io", "isSystemWide": True}, headers=headers)
    assert r.status_code == 403

    admin = app.test_client()
    headers = _login(admin)
    r = admin.post("/api/v1/settings/registry/new", json={"name": "Quay", "url": "quay.io", "isSystemWide": True}, headers=headers)
    assert r.status_code == 201
    public = member.get("/api/v1/settings").json["registries"]["public"]
    assert sorted(r["name"] for r in public) == ["Docker Hub", "Quay"]


def test_add_registry_requires_name_and_url(app):
    client = app.test_client()
    headers = _login(client)
    r = client.post("/api/v1/settings/registry/new", json={"name": "x"}, headers=headers)
    assert r.status_code == 400


def test_set_registry_credentials(app):
    admin = app.test_client()
    headers = _login(admin)
    r = admin.post("/api/v1/settings/registry", json={"id": DEFAULT_REGISTRY_ID, "username": "hub", "password": "pw1"}, headers=headers)
    assert r.status_code == 201
    with session_scope(app) as s:
        hub = s.get(DockerRegistry, DEFAULT_REGISTRY_ID)
        assert hub.username == "hub"
        assert decrypt(hub.password, secret="test-secret") == "pw1"
        assert s.query(AuditEvent).filter(AuditEvent.action == "registry.credentials_update").count() == 1

    # Clearing the password stores an empty string.
    r = admin.post("/api/v1/settings/registry", json={"id": DEFAULT_REGISTRY_ID, "username": "hub", "password": ""}, headers=headers)
    assert r.status_code == 201
    with session_scope(app) as s:
        assert s.get(DockerRegistry, DEFAULT_REGISTRY_ID).password == ""

    r = admin.post("/api/v1/settings/registry", json={"id": "missing", "username": "x"}, headers=headers)
    assert r.status_code == 404


def test_member_cannot_update_other_teams_registry(app):
    member = app.test_client()
    headers = _login(member, "member@example.com")
    r = member.post("/api/v1/settings/registry", json={"id": DEFAULT_REGISTRY_ID, "username": "x"}, headers=headers)
    assert r.status_code == 404


def test_delete_registry_moves_applications_to_default(app):
    with session_scope(app) as s:
        s.add(DockerRegistry(id="r1", name="Private", url="registry.example.com", password="", team_id="t1"))
        s.flush()
        s.add(Application(id="a1", name="web", team_id="t1", docker_registry_id="r1"))

    member = app.test_client()
    headers = _login(member, "member@example.com")
    r = member.delete("/api/v1/settings/registry", json={"id": "r1"}, headers=headers)
    assert r.status_code == 201

    with session_scope(app) as s:
        assert s.get(DockerRegistry, "r1") is None
        assert s.get(Application, "a1").docker_registry_id == DEFAULT_REGISTRY_ID


def test_delete_registry_guards(app):
    with session_scope(app) as s:
        s.add(DockerRegistry(id="r1", name="Private", url="registry.example.com", password="", team_id="t1"))

    admin = app.test_client()
    headers = _login(admin)
    r = admin.delete("/api/v1/settings/registry", json={"id": DEFAULT_REGISTRY_ID}, headers=headers)
    assert r.status_code == 400

    # Another team's registry is left alone.
    r = admin.delete("/api/v1/settings/registry", json={"id": "r1"}, headers=headers)
    assert r.status_code == 201
    with session_scope(app) as s:
        assert s.get(DockerRegistry, "r1") is not None


def test_system_wide_flag_must_be_boolean(app):
    admin = app.test_client()
    headers = _login(admin)
    r = admin.post(
        "/api/v1/settings/registry/new",
        json={"name": "Quay", "url": "quay.io", "password": "pw", "isSystemWide": "false"},
        headers=headers,
    )
    assert r.status_code == 400
    assert r.json["message"] == "isSystemWide must be true or false."
    with session_scope(app) as s:
        assert s.query(DockerRegistry).filter(DockerRegistry.name == "Quay").count() == 0
