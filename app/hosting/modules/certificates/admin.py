from __future__ import annotations

from flask import Blueprint, g, request
from sqlalchemy.exc import SQLAlchemyError

from app.hosting.db import db_session
from app.hosting.errors import ApiError
from app.hosting.models import User
from app.hosting.modules.certificates.service import (
    delete_certificate,
    discard_certificate_files,
    upload_certificate,
)
from app.hosting.rbac import require_permission

bp = Blueprint("certificates", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


@bp.post("/upload")
@require_permission("certificates.manage")
def certificate_upload():
    if request.is_json:
        payload = request.get_json(silent=True) or {}
    else:
        # multipart upload from the settings form: cert/key as files or text fields
        payload = {
            name: (request.files[name].read().decode("utf-8", errors="replace") if name in request.files else request.form.get(name))
            for name in ("cert", "key")
        }
    s = db_session()
    cert_id = upload_certificate(s, payload, _current_user()).id
    try:
        s.commit()
    except SQLAlchemyError:
        s.rollback()
        discard_certificate_files(cert_id)
        raise
    return "", 201


@bp.delete("/certificate")
@require_permission("certificates.manage")
def certificate_delete():
    cert_id = str((request.get_json(silent=True) or {}).get("id") or "").strip()
    if not cert_id:
        raise ApiError("id is required.", 400)
    s = db_session()
    delete_certificate(s, cert_id, _current_user())
    s.commit()
    return "", 201
