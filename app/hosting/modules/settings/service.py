from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING

import dns.exception

from app.hosting import dns_checks
from app.hosting.audit import record_event
from app.hosting.constants import SETTINGS_ID
from app.hosting.errors import ApiError
from app.hosting.modules.certificates.service import list_certificates
from app.hosting.modules.registries.service import list_registries
from app.hosting.modules.ssh_keys.service import list_ssh_keys
from app.hosting.utils import parse_bool

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.hosting.models import User
    from app.hosting.modules.settings.models import Setting

logger = logging.getLogger(__name__)

# JSON key -> column, for the plain flags save_settings copies when present.
_FLAG_FIELDS = {
    "doNotTrack": "do_not_track",
    "isRegistrationEnabled": "is_registration_enabled",
    "dualCerts": "dual_certs",
    "isAutoUpdateEnabled": "is_auto_update_enabled",
    "isDNSCheckEnabled": "is_dns_check_enabled",
    "isAPIDebuggingEnabled": "is_api_debugging_enabled",
}


def get_settings(s: "Session") -> "Setting":
    from app.hosting.modules.settings.models import Setting

    setting = s.get(Setting, SETTINGS_ID)
    if not setting:
        raise ApiError("Instance settings are missing; run scripts/init_db.py.", 500)
    return setting


def settings_to_dict(setting: "Setting") -> dict:
    return {
        "id": setting.id,
        "fqdn": setting.fqdn,
        "isRegistrationEnabled": setting.is_registration_enabled,
        "dualCerts": setting.dual_certs,
        "minPort": setting.min_port,
        "maxPort": setting.max_port,
        "isAutoUpdateEnabled": setting.is_auto_update_enabled,
        "isDNSCheckEnabled": setting.is_dns_check_enabled,
        "DNSServers": setting.dns_servers,
        "isAPIDebuggingEnabled": setting.is_api_debugging_enabled,
        "doNotTrack": setting.do_not_track,
        "proxyDefaultRedirect": setting.proxy_default_redirect,
        "createdAt": setting.created_at.isoformat() if setting.created_at else None,
        "updatedAt": setting.updated_at.isoformat() if setting.updated_at else None,
    }


def list_all_settings(s: "Session", user: "User") -> dict:
    return {
        "settings": settings_to_dict(get_settings(s)),
        "certificates": list_certificates(s, user.team_id),
        "sshKeys": list_ssh_keys(s, user.team_id),
        "registries": list_registries(s, user.team_id),
    }


def _parse_port(value, field: str) -> int:
    if isinstance(value, bool):
        raise ApiError(f"{field} must be a port number.", 400)
    try:
        port = int(value)
    except (TypeError, ValueError):
        raise ApiError(f"{field} must be a port number.", 400)
    if not 1 <= port <= 65535:
        raise ApiError(f"{field} must be between 1 and 65535.", 400)
    return port


def _parse_dns_servers(value) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ApiError("DNSServers must be a comma separated list of IP addresses.", 400)
    servers = [x.strip() for x in value.split(",") if x.strip()]
    for server in servers:
        if not dns_checks.is_ip(server):
            raise ApiError(f"Invalid DNS server: {server}", 400)
    return ",".join(servers) or None


def save_settings(s: "Session", payload: dict, user: "User") -> "Setting":
    """
    Apply the fields present in ``payload``. ``fqdn`` is only changed when non-empty
    and the port range only when both bounds are given.
    """
    from flask import current_app

    from app.hosting.telemetry import init_error_reporting

    setting = get_settings(s)
    changes: dict[str, object] = {}

    for key, attr in _FLAG_FIELDS.items():
        value = parse_bool(payload, key)
        if value is None:
            continue
        if getattr(setting, attr) != value:
            changes[attr] = value
            setattr(setting, attr, value)

    if "DNSServers" in payload:
        servers = _parse_dns_servers(payload["DNSServers"])
        if servers != setting.dns_servers:
            changes["dns_servers"] = servers
            setting.dns_servers = servers

    fqdn = (payload.get("fqdn") or "").strip().lower()
    if fqdn and not fqdn.startswith(("http://", "https://")):
        raise ApiError("fqdn must start with http:// or https://.", 400)
    if fqdn and fqdn != setting.fqdn:
        changes["fqdn"] = fqdn
        setting.fqdn = fqdn

    if "proxyDefaultRedirect" in payload:
        redirect = (payload.get("proxyDefaultRedirect") or "").strip() or None
        if redirect != setting.proxy_default_redirect:
            changes["proxy_default_redirect"] = redirect
            setting.proxy_default_redirect = redirect

    if payload.get("minPort") and payload.get("maxPort"):
        min_port = _parse_port(payload["minPort"], "minPort")
        max_port = _parse_port(payload["maxPort"], "maxPort")
        if min_port > max_port:
            raise ApiError("minPort must not be greater than maxPort.", 400)
        setting.min_port, setting.max_port = min_port, max_port
        changes["ports"] = [min_port, max_port]

    setting.updated_at = datetime.utcnow()
    record_event(s, actor=user, action="settings.update", entity_type="Setting", entity_id=setting.id, metadata=changes)

    if payload.get("doNotTrack") is False:
        init_error_reporting(current_app)
    return setting


def delete_domain(s: "Session", fqdn: str, user: "User") -> str | None:
    """
    Remove the dashboard domain. Returns the first IPv4 address the domain resolved
    to so the caller can send the browser back to the instance by IP.
    """
    from app.hosting.modules.settings.models import Setting

    fqdn = (fqdn or "").strip().lower()
    if not fqdn:
        raise ApiError("fqdn is required.", 400)
    setting = s.query(Setting).filter(Setting.fqdn == fqdn).one_or_none()
    if not setting:
        raise ApiError("Domain not found.", 404)

    ip = None
    try:
        addresses = dns_checks.resolve4(dns_checks.get_domain(fqdn), setting.dns_server_list)
        ip = addresses[0] if addresses else None
    except dns.exception.DNSException as e:
        logger.info("Domain %s does not resolve (%s); no redirect target", fqdn, e)

    setting.fqdn = None
    setting.updated_at = datetime.utcnow()
    record_event(s, actor=user, action="settings.domain_delete", entity_type="Setting", entity_id=setting.id, metadata={"fqdn": fqdn})
    return ip


def check_domain(s: "Session", setting_id: str | None, payload: dict, *, hostname: str, dev: bool) -> dict:
    fqdn = (payload.get("fqdn") or "").strip().lower()
    if not fqdn:
        raise ApiError("fqdn is required.", 400)
    dns_check = parse_bool(payload, "isDNSCheckEnabled", False)
    force_save = parse_bool(payload, "forceSave", False)
    dual_certs = parse_bool(payload, "dualCerts", False)

    if dns_checks.is_domain_configured(s, id=setting_id, fqdn=fqdn):
        raise ApiError("Domain already configured", 409)

    if dns_check and not force_save and not dev:
        return dns_checks.check_domains_is_valid_in_dns(
            hostname=hostname,
            fqdn=fqdn,
            dual_certs=dual_certs,
            servers=get_settings(s).dns_server_list,
        )
    return {}


def check_dns(s: "Session", domain: str, *, hostname: str) -> dict:
    dns_checks.is_dns_valid(hostname, domain, get_settings(s).dns_server_list)
    return {}
