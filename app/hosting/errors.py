from __future__ import annotations

from flask import jsonify, request


class ApiError(Exception):
    """
    Raised by service functions; create_app() translates it into a JSON response.
    Default status mirrors the dashboard client's expectation that unclassified
    failures are server errors.
    """

    def __init__(self, message: str, status: int = 500) -> None:
        super().__init__(message)
        self.message = message
        self.status = status


def wants_json() -> bool:
    """API and auth calls get JSON errors; shell pages get HTML."""
    if request.path.startswith(("/api/", "/auth/")):
        return True
    return request.is_json or request.accept_mimetypes.best == "application/json"


def json_error(message: str, status: int):
    resp = jsonify({"status": status, "message": message})
    resp.status_code = status
    return resp
