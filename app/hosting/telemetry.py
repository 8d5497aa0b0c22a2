from __future__ import annotations

import logging

import sentry_sdk
from flask import Flask
from sentry_sdk.integrations.flask import FlaskIntegration

from app.hosting.config import is_dev

logger = logging.getLogger(__name__)


def init_error_reporting(app: Flask) -> bool:
    """
    Start Sentry error reporting. Only called once the instance has opted in
    (settings.do_not_track is false). Returns False when no DSN is configured.
    """
    dsn = app.config.get("SENTRY_DSN")
    if not dsn:
        logger.info("Error reporting requested but SENTRY_DSN is not set")
        return False
    sentry_sdk.init(
        dsn=dsn,
        environment="development" if is_dev(app.config) else "production",
        release=app.config.get("APP_VERSION"),
        integrations=[FlaskIntegration()],
    )
    logger.info("Sentry initialized")
    return True
