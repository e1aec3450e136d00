from __future__ import annotations


class ServiceError(ValueError):
    """A business rule rejected the request; carries the HTTP status to return."""

    status = 400

    def __init__(self, message: str, *, status: int | None = None, code: str | None = None, extra: dict | None = None):
        super().__init__(message)
        self.message = message
        if status is not None:
            self.status = int(status)
        self.code = code or ""
        self.extra = dict(extra or {})

    def to_dict(self) -> dict:
        body = {"ok": False, "message": self.message}
        if self.code:
            body["error"] = self.code
        body.update(self.extra)
        return body


class NotFound(ServiceError):
    status = 404


class Forbidden(ServiceError):
    status = 403


class Conflict(ServiceError):
    status = 409
