"""
File management inside the reverse proxy container (custom TLS certificates).

Commands run through `docker exec` with an argument list; ids are generated
server-side and are additionally shell-quoted.
"""
from __future__ import annotations

import logging
import shlex
import subprocess

from flask import current_app

logger = logging.getLogger(__name__)

DOCKER_TIMEOUT_SECONDS = 30


class ProxyError(RuntimeError):
    pass


def _container() -> str:
    return (current_app.config.get("PROXY_CONTAINER") or "").strip()


def _certs_dir() -> str:
    return (current_app.config.get("PROXY_CERTS_DIR") or "/etc/traefik/acme/custom").rstrip("/")


def certificate_paths(cert_id: str) -> tuple[str, str]:
    base = _certs_dir()
    return f"{base}/{cert_id}-cert.pem", f"{base}/{cert_id}-key.pem"


def _exec(script: str, *, stdin: str | None = None) -> None:
    container = _container()
    args = ["docker", "exec"]
    if stdin is not None:
        args.append("-i")
    args += [container, "sh", "-c", script]
    try:
        result = subprocess.run(
            args,
            input=stdin,
            capture_output=True,
            text=True,
            timeout=DOCKER_TIMEOUT_SECONDS,
            check=False,
        )
    except (OSError, subprocess.TimeoutExpired) as e:
        raise ProxyError(f"Cannot reach proxy container {container}: {e}") from e
    if result.returncode != 0:
        raise ProxyError(f"Proxy command failed ({result.returncode}): {(result.stderr or '').strip()[:300]}")


def proxy_enabled() -> bool:
    return bool(_container())


def write_certificate_files(cert_id: str, cert_pem: str, key_pem: str) -> None:
    if not proxy_enabled():
        logger.info("PROXY_CONTAINER not set; skipping certificate push for %s", cert_id)
        return
    cert_path, key_path = certificate_paths(cert_id)
    _exec(f"mkdir -p {shlex.quote(_certs_dir())} && cat > {shlex.quote(cert_path)}", stdin=cert_pem)
    _exec(f"umask 077 && cat > {shlex.quote(key_path)}", stdin=key_pem)
    logger.info("Pushed certificate %s to proxy container %s", cert_id, _container())


def remove_certificate_files(cert_id: str) -> None:
    if not proxy_enabled():
        logger.info("PROXY_CONTAINER not set; skipping certificate removal for %s", cert_id)
        return
    cert_path, key_path = certificate_paths(cert_id)
    _exec(f"rm -f {shlex.quote(key_path)} {shlex.quote(cert_path)}")
    logger.info("Removed certificate %s from proxy container %s", cert_id, _container())
