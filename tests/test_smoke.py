import pytest
from werkzeug.security import generate_password_hash

from app.hosting import auth as auth_module, create_app
from app.hosting.constants import ROOT_TEAM_ID
from app.hosting.db import session_scope
from app.hosting.models import Base, Role, Team, User
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
    engine = app.extensions["sqlalchemy_engine"]
    Base.metadata.create_all(bind=engine)

    with session_scope(app) as s:
        seed_platform(s)
        s.flush()
        admin = s.query(Role).filter(Role.key == "admin").one()
        u = User(email="admin@example.com", password_hash=generate_password_hash("pw"), is_active=True, team_id=ROOT_TEAM_ID)
        u.roles.append(admin)
        s.add(u)
    return app


@pytest.fixture()
def client(app):
    return app.test_client()


def _login(client, email="admin@example.com", password="pw"):
    return client.post("/auth/login", json={"email": email, "password": password})


def test_health_ok(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json["ok"] is True
    assert client.get("/healthz").data == b"ok"


def test_shell_redirects_anonymous_to_login(client):
    r = client.get("/settings/ssh-keys", follow_redirects=False)
    assert r.status_code == 302
    assert "/login?next=" in r.headers["Location"]
    assert "ssh-keys" in r.headers["Location"]


def test_login_page_renders_for_anonymous(client):
    r = client.get("/login")
    assert r.status_code == 200
    assert b'name="password"' in r.data


def test_form_login_redirects_to_next(client):
    r = client.post(
        "/auth/login",
        data={"email": "admin@example.com", "password": "pw", "next": "/settings/registries"},
        follow_redirects=False,
    )
    assert r.status_code == 302
    assert r.headers["Location"].endswith("/settings/registries")


def test_form_login_ignores_offsite_next(client):
    r = client.post(
        "/auth/login",
        data={"email": "admin@example.com", "password": "pw", "next": "//evil.example.com"},
        follow_redirects=False,
    )
    assert r.status_code == 302
    assert "evil.example.com" not in r.headers["Location"]


def test_login_page_redirects_signed_in_user(client):
    _login(client)
    r = client.get("/login", follow_redirects=False)
    assert r.status_code == 302
    assert r.headers["Location"].endswith("/")


def test_shell_navigation_for_admin(client):
    _login(client)
    r = client.get("/")
    assert r.status_code == 200
    for label in (b"General", b"SSH Keys", b"Certificates", b"Docker Registries"):
        assert label in r.data


def test_unknown_settings_section_is_404(client):
    _login(client)
    assert client.get("/settings/nope").status_code == 404


def test_json_login_rejects_bad_password(client):
    r = _login(client, password="wrong")
    assert r.status_code == 401
    assert r.json["message"] == "Invalid credentials."


def test_session_bootstrap(client):
    assert client.get("/api/v1/user").status_code == 401

    _login(client)
    r = client.get("/api/v1/user")
    assert r.status_code == 200
    body = r.json
    assert body["user"]["email"] == "admin@example.com"
    assert body["user"]["teamId"] == ROOT_TEAM_ID
    assert "settings.edit" in body["permissions"]
    assert body["csrfToken"]
    assert body["isRegistrationEnabled"] is True


def test_api_requires_auth_and_csrf(client):
    r = client.get("/api/v1/settings")
    assert r.status_code == 401
    assert r.json["status"] == 401

    _login(client)
    r = client.post("/api/v1/settings", json={"dualCerts": True})
    assert r.status_code == 400
    assert "CSRF" in r.json["message"]


def test_logout_clears_session(client):
    _login(client)
    r = client.post("/auth/logout", json={})
    assert r.status_code == 200
    assert client.get("/api/v1/user").status_code == 401


def test_register_first_user_owns_instance(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'fresh.db'}")
    monkeypatch.setenv("ENV", "test")
    app = create_app()
    Base.metadata.create_all(bind=app.extensions["sqlalchemy_engine"])
    with session_scope(app) as s:
        seed_platform(s)
    client = app.test_client()

    r = client.post("/auth/register", json={"email": "owner@example.com", "password": "long-enough"})
    assert r.status_code == 201
    assert r.json["user"]["teamId"] == ROOT_TEAM_ID

    other = app.test_client()
    r = other.post("/auth/register", json={"email": "dev@example.com", "password": "long-enough"})
    assert r.status_code == 201
    assert r.json["user"]["teamId"] != ROOT_TEAM_ID

    with session_scope(app) as s:
        dev = s.query(User).filter(User.email == "dev@example.com").one()
        assert [role.key for role in dev.roles] == ["member"]
        assert s.get(Team, dev.team_id).name == "dev@example.com"


def test_register_respects_registration_flag(client, app):
    from app.hosting.modules.settings.models import Setting

    with session_scope(app) as s:
        s.get(Setting, "0").is_registration_enabled = False

    r = client.post("/auth/register", json={"email": "late@example.com", "password": "long-enough"})
    assert r.status_code == 403
    assert r.json["message"] == "Registration is disabled."


def test_register_validates_input(client):
    r = client.post("/auth/register", json={"email": "x@example.com", "password": "short"})
    assert r.status_code == 400
    r = client.post("/auth/register", json={"email": "admin@example.com", "password": "long-enough"})
    assert r.status_code == 409
