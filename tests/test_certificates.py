import datetime as dt
import io
import subprocess

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session
from werkzeug.security import generate_password_hash

from app.hosting import auth as auth_module, create_app, proxy
from app.hosting.constants import ROOT_TEAM_ID
from app.hosting.crypto import decrypt
from app.hosting.db import session_scope
from app.hosting.models import Base, User
from app.hosting.modules.certificates.models import Certificate
from scripts.init_db import seed_platform


def _self_signed(cn: str) -> tuple[str, str]:
    key = ec.generate_private_key(ec.SECP256R1())
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, cn)])
    now = dt.datetime.now(dt.timezone.utc)
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - dt.timedelta(days=1))
        .not_valid_after(now + dt.timedelta(days=30))
        .sign(key, hashes.SHA256())
    )
    cert_pem = cert.public_bytes(serialization.Encoding.PEM).decode("ascii")
    key_pem = key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    ).decode("ascii")
    return cert_pem, key_pem


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("PROXY_CONTAINER", "proxy")
    monkeypatch.setenv("PROXY_CERTS_DIR", "/certs")
    for k in ("ENCRYPTION_KEY", "SENTRY_DSN"):
        monkeypatch.delenv(k, raising=False)

    app = create_app()
    auth_module._login_attempts.clear()
    Base.metadata.create_all(bind=app.extensions["sqlalchemy_engine"])

    with session_scope(app) as s:
        roles = seed_platform(s)
        admin = User(email="admin@example.com", password_hash=generate_password_hash("pw"), is_active=True, team_id=ROOT_TEAM_ID)
        admin.roles.append(roles["admin"])
        s.add(admin)
    return app


@pytest.fixture()
def docker_calls(monkeypatch):
    calls = []

    def _run(args, **kwargs):
        calls.append({"args": args, "input": kwargs.get("input")})
        return subprocess.CompletedProcess(args, 0, stdout="", stderr="")

    monkeypatch.setattr(proxy.subprocess, "run", _run)
    return calls


def _login(client) -> dict:
    client.post("/auth/login", json={"email": "admin@example.com", "password": "pw"})
    token = client.get("/api/v1/user").json["csrfToken"]
    return {"X-CSRF-Token": token}


def test_upload_certificate_stores_and_pushes_to_proxy(app, docker_calls):
    cert_pem, key_pem = _self_signed("shop.example.com")
    client = app.test_client()
    headers = _login(client)

    r = client.post("/api/v1/settings/upload", json={"cert": cert_pem, "key": key_pem}, headers=headers)
    assert r.status_code == 201

    with session_scope(app) as s:
        c = s.query(Certificate).one()
        cert_id = c.id
        assert c.team_id == ROOT_TEAM_ID
        assert "PRIVATE KEY" not in c.key
        assert decrypt(c.key, secret="test-secret") == key_pem.strip() + "\n"

    assert len(docker_calls) == 2
    assert docker_calls[0]["args"][:4] == ["docker", "exec", "-i", "proxy"]
    assert f"/certs/{cert_id}-cert.pem" in docker_calls[0]["args"][-1]
    assert docker_calls[0]["input"] == cert_pem.strip() + "\n"
    assert f"/certs/{cert_id}-key.pem" in docker_calls[1]["args"][-1]

    listed = client.get("/api/v1/settings").json["certificates"]
    assert [(c["id"], c["commonName"]) for c in listed] == [(cert_id, "shop.example.com")]


def test_upload_certificate_as_multipart_files(app, docker_calls):
    cert_pem, key_pem = _self_signed("files.example.com")
    client = app.test_client()
    headers = _login(client)
    r = client.post(
        "/api/v1/settings/upload",
        data={"cert": (io.BytesIO(cert_pem.encode()), "cert.pem"), "key": (io.BytesIO(key_pem.encode()), "key.pem")},
        content_type="multipart/form-data",
        headers=headers,
    )
    assert r.status_code == 201


def test_upload_rejects_duplicate_common_name(app, docker_calls):
    client = app.test_client()
    headers = _login(client)
    cert_pem, key_pem = _self_signed("dup.example.com")
    assert client.post("/api/v1/settings/upload", json={"cert": cert_pem, "key": key_pem}, headers=headers).status_code == 201

    cert_pem, key_pem = _self_signed("dup.example.com")
    r = client.post("/api/v1/settings/upload", json={"cert": cert_pem, "key": key_pem}, headers=headers)
    assert r.status_code == 409


def test_upload_rejects_bad_input(app, docker_calls):
    client = app.test_client()
    headers = _login(client)
    cert_pem, _ = _self_signed("a.example.com")
    _, other_key = _self_signed("b.example.com")

    r = client.post("/api/v1/settings/upload", json={"cert": cert_pem, "key": other_key}, headers=headers)
    assert r.status_code == 400
    assert r.json["message"] == "Private key does not match the certificate."

    r = client.post("/api/v1/settings/upload", json={"cert": "not a cert", "key": other_key}, headers=headers)
    assert r.status_code == 400

    r = client.post("/api/v1/settings/upload", json={"cert": cert_pem}, headers=headers)
    assert r.status_code == 400
    assert docker_calls == []


def test_delete_certificate_removes_proxy_files(app, docker_calls):
    cert_pem, _ = _self_signed("gone.example.com")
    with session_scope(app) as s:
        s.add(Certificate(id="c1", cert=cert_pem, key="", team_id=ROOT_TEAM_ID))

    client = app.test_client()
    headers = _login(client)
    r = client.delete("/api/v1/settings/certificate", json={"id": "c1"}, headers=headers)
    assert r.status_code == 201

    assert len(docker_calls) == 1
    assert docker_calls[0]["args"][:3] == ["docker", "exec", "proxy"]
    assert docker_calls[0]["args"][-1] == "rm -f /certs/c1-key.pem /certs/c1-cert.pem"
    with session_scope(app) as s:
        assert s.get(Certificate, "c1") is None


def test_delete_certificate_keeps_row_when_proxy_fails(app, monkeypatch):
    def _run(args, **kwargs):
        return subprocess.CompletedProcess(args, 1, stdout="", stderr="No such container: proxy")

    monkeypatch.setattr(proxy.subprocess, "run", _run)
    cert_pem, _ = _self_signed("kept.example.com")
    with session_scope(app) as s:
        s.add(Certificate(id="c1", cert=cert_pem, key="", team_id=ROOT_TEAM_ID))

    client = app.test_client()
    headers = _login(client)
    r = client.delete("/api/v1/settings/certificate", json={"id": "c1"}, headers=headers)
    assert r.status_code == 500
    assert "No such container" in r.json["message"]
    with session_scope(app) as s:
        assert s.get(Certificate, "c1") is not None


def test_upload_removes_cert_file_when_key_push_fails(app, monkeypatch):
    calls = []

    def _run(args, **kwargs):
        calls.append(args[-1])
        if "-key.pem" in args[-1] and args[-1].startswith("umask"):
            return subprocess.CompletedProcess(args, 1, stdout="", stderr="read-only file system")
        return subprocess.CompletedProcess(args, 0, stdout="", stderr="")

    monkeypatch.setattr(proxy.subprocess, "run", _run)
    cert_pem, key_pem = _self_signed("partial.example.com")
    client = app.test_client()
    headers = _login(client)

    r = client.post("/api/v1/settings/upload", json={"cert": cert_pem, "key": key_pem}, headers=headers)
    assert r.status_code == 500
    assert "read-only file system" in r.json["message"]

    cert_path = calls[0].split("cat > ", 1)[1]
    assert calls[-1].startswith("rm -f ")
    assert cert_path in calls[-1]
    with session_scope(app) as s:
        assert s.query(Certificate).count() == 0


def test_upload_removes_proxy_files_when_commit_fails(app, docker_calls, monkeypatch):
    client = app.test_client()
    headers = _login(client)
    cert_pem, key_pem = _self_signed("rollback.example.com")

    def _commit(self):
        raise OperationalError("COMMIT", {}, Exception("database is locked"))

    with monkeypatch.context() as m:
        m.setattr(Session, "commit", _commit)
        r = client.post("/api/v1/settings/upload", json={"cert": cert_pem, "key": key_pem}, headers=headers)

    assert r.status_code == 500
    assert len(docker_calls) == 3
    assert docker_calls[-1]["args"][-1].startswith("rm -f /certs/")
    with session_scope(app) as s:
        assert s.query(Certificate).count() == 0
