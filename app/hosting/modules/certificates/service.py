from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING

from cryptography import x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.x509.oid import NameOID

from app.hosting import proxy
from app.hosting.audit import record_event
from app.hosting.crypto import encrypt
from app.hosting.errors import ApiError

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.hosting.models import User
    from app.hosting.modules.certificates.models import Certificate

logger = logging.getLogger(__name__)


def load_certificate(cert_pem: str) -> x509.Certificate:
    try:
        return x509.load_pem_x509_certificate(cert_pem.encode("utf-8"))
    except ValueError as e:
        raise ApiError("Certificate is not a valid PEM encoded X.509 certificate.", 400) from e


def common_name(cert: x509.Certificate) -> str | None:
    attrs = cert.subject.get_attributes_for_oid(NameOID.COMMON_NAME)
    if not attrs:
        return None
    value = attrs[0].value
    return value.decode("utf-8") if isinstance(value, bytes) else value


def common_name_from_pem(cert_pem: str) -> str | None:
    return common_name(load_certificate(cert_pem))


def _public_key_bytes(public_key) -> bytes:
    return public_key.public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )


def _check_key_matches(cert: x509.Certificate, key_pem: str) -> None:
    try:
        key = serialization.load_pem_private_key(key_pem.encode("utf-8"), password=None)
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        # TypeError: key is passphrase protected
        raise ApiError("Private key is not a valid, unencrypted PEM key.", 400) from e
    if _public_key_bytes(key.public_key()) != _public_key_bytes(cert.public_key()):
        raise ApiError("Private key does not match the certificate.", 400)


def list_certificates(s: "Session", team_id: str) -> list[dict]:
    from app.hosting.modules.certificates.models import Certificate

    certificates = s.query(Certificate).filter(Certificate.team_id == team_id).order_by(Certificate.created_at.asc()).all()
    out = []
    for c in certificates:
        try:
            cn = common_name_from_pem(c.cert)
        except ApiError:
            logger.warning("Stored certificate %s cannot be parsed", c.id)
            cn = None
        out.append({
            "id": c.id,
            "commonName": cn,
            "createdAt": c.created_at.isoformat() if c.created_at else None,
        })
    return out


def discard_certificate_files(cert_id: str) -> None:
    """Best-effort removal of proxy files for a certificate that was not stored."""
    try:
        proxy.remove_certificate_files(cert_id)
    except proxy.ProxyError as e:
        logger.warning("Could not remove proxy files for certificate %s: %s", cert_id, e)


def upload_certificate(s: "Session", payload: dict, user: "User") -> "Certificate":
    from app.hosting.modules.certificates.models import Certificate

    cert_pem = (payload.get("cert") or "").strip()
    key_pem = (payload.get("key") or "").strip()
    if not cert_pem or not key_pem:
        raise ApiError("Certificate and private key are required.", 400)

    cert = load_certificate(cert_pem)
    _check_key_matches(cert, key_pem)
    cn = common_name(cert)

    existing = s.query(Certificate).filter(Certificate.team_id == user.team_id).all()
    for other in existing:
        try:
            other_cn = common_name_from_pem(other.cert)
        except ApiError:
            continue
        if cn and other_cn == cn:
            raise ApiError(f"A certificate for {cn} already exists.", 409)

    certificate = Certificate(
        cert=cert_pem + "\n",
        key=encrypt(key_pem + "\n"),
        team_id=user.team_id,
        created_at=datetime.utcnow(),
    )
    s.add(certificate)
    s.flush()

    try:
        proxy.write_certificate_files(certificate.id, cert_pem + "\n", key_pem + "\n")
    except proxy.ProxyError as e:
        # A partial push may have left the cert file behind.
        discard_certificate_files(certificate.id)
        raise ApiError(str(e), 500) from e

    record_event(
        s,
        actor=user,
        action="certificate.upload",
        entity_type="Certificate",
        entity_id=certificate.id,
        metadata={"common_name": cn, "not_after": cert.not_valid_after_utc.isoformat()},
    )
    return certificate


def delete_certificate(s: "Session", cert_id: str, user: "User") -> None:
    """Remove the proxy copies first; the row is kept if the proxy cannot be updated."""
    from app.hosting.modules.certificates.models import Certificate

    certificate = (
        s.query(Certificate)
        .filter(Certificate.id == cert_id)
        .filter(Certificate.team_id == user.team_id)
        .one_or_none()
    )
    if not certificate:
        return

    try:
        proxy.remove_certificate_files(certificate.id)
    except proxy.ProxyError as e:
        raise ApiError(str(e), 500) from e

    s.delete(certificate)
    record_event(s, actor=user, action="certificate.delete", entity_type="Certificate", entity_id=cert_id)
