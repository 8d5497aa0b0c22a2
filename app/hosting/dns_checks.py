"""
DNS checks run before a domain is accepted for the dashboard or an application.

Lookups go through dnspython so the instance's configured DNS servers
(settings.dns_servers) are honoured instead of the host resolver.
"""
from __future__ import annotations

import ipaddress
import logging

import dns.exception
import dns.resolver
from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.hosting.errors import ApiError

logger = logging.getLogger(__name__)

DNS_TIMEOUT_SECONDS = 5.0


def get_domain(fqdn: str | None) -> str:
    """Strip the scheme from a stored fqdn ("https://a.example.com" -> "a.example.com")."""
    return (fqdn or "").replace("https://", "").replace("http://", "")


def naked_domain(domain: str) -> str:
    """Drop a leading "www." label."""
    return domain[4:] if domain.startswith("www.") else domain


def twin_domain(domain: str) -> str:
    """The www./naked counterpart used for dual certificates."""
    return naked_domain(domain) if domain.startswith("www.") else f"www.{domain}"


def is_ip(value: str) -> bool:
    try:
        ipaddress.ip_address(value)
    except ValueError:
        return False
    return True


def resolve4(name: str, servers: list[str] | None = None) -> list[str]:
    """A records for ``name``; raises dns.exception.DNSException on failure."""
    resolver = dns.resolver.Resolver(configure=not servers)
    if servers:
        resolver.nameservers = list(servers)
    resolver.lifetime = DNS_TIMEOUT_SECONDS
    answer = resolver.resolve(name, "A")
    return [rdata.address for rdata in answer]


def _host_addresses(hostname: str, servers: list[str] | None) -> list[str]:
    if is_ip(hostname):
        return [hostname]
    return resolve4(hostname, servers)


def _points_to(domain: str, addresses: list[str], servers: list[str] | None) -> bool:
    return any(ip in addresses for ip in resolve4(domain, servers))


def is_dns_valid(hostname: str, domain: str, servers: list[str] | None = None) -> None:
    """Raise ApiError unless ``domain`` resolves to one of the addresses of ``hostname``."""
    try:
        addresses = _host_addresses(hostname, servers)
    except dns.exception.DNSException as e:
        logger.warning("Cannot resolve dashboard host %s: %s", hostname, e)
        raise ApiError("Invalid DNS.", 500) from e

    try:
        found = _points_to(domain, addresses, servers)
    except dns.exception.DNSException as e:
        logger.info("DNS lookup for %s failed: %s", domain, e)
        found = False
    if not found:
        raise ApiError("DNS not set", 500)


def check_domains_is_valid_in_dns(
    *,
    hostname: str,
    fqdn: str,
    dual_certs: bool = False,
    servers: list[str] | None = None,
) -> dict:
    domain = get_domain(fqdn)
    try:
        addresses = _host_addresses(hostname, servers)
    except dns.exception.DNSException as e:
        raise ApiError(f"Could not determine IP address for {hostname}.", 500) from e

    names = [domain, twin_domain(domain)] if dual_certs else [domain]
    try:
        ok = all(_points_to(name, addresses, servers) for name in names)
    except dns.exception.DNSException as e:
        logger.info("DNS lookup for %s failed: %s", ", ".join(names), e)
        ok = False
    if not ok:
        raise ApiError("DNS not set correctly or propagated. Please check your DNS settings.", 500)
    return {}


def _fqdn_matches(column, naked: str):
    # Stored values carry a scheme; bare values are matched too.
    return or_(
        column.endswith(f"//{naked}"),
        column.endswith(f"//www.{naked}"),
        column == naked,
        column == f"www.{naked}",
    )


def is_domain_configured(s: Session, *, id: str | None, fqdn: str) -> bool:
    """
    True when an application, or the dashboard settings row, other than ``id``
    already serves ``fqdn`` (naked and www. forms are treated as the same domain).
    """
    from app.hosting.modules.applications.models import Application
    from app.hosting.modules.settings.models import Setting

    naked = naked_domain(get_domain(fqdn))
    if not naked:
        return False

    app_q = s.query(Application.id).filter(_fqdn_matches(Application.fqdn, naked))
    setting_q = s.query(Setting.id).filter(_fqdn_matches(Setting.fqdn, naked))
    if id:
        app_q = app_q.filter(Application.id != id)
        setting_q = setting_q.filter(Setting.id != id)
    return app_q.first() is not None or setting_q.first() is not None
