from __future__ import annotations

import hashlib
import json
from typing import Any

from flask import has_request_context, request
from sqlalchemy.exc import IntegrityError

from app.extensions import db
from app.models import IdempotencyKey


def _canonical_json(payload: Any) -> str:
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)


def _hash_request(scope: str, payload: Any) -> str:
    raw = f"{scope.strip()}|{_canonical_json(payload)}".encode("utf-8")
    return hashlib.sha256(raw).hexdigest()


def get_idempotency_key() -> str | None:
    if not has_request_context():
        return None
    k = request.headers.get("Idempotency-Key") or request.headers.get("X-Idempotency-Key")
    if not k:
        return None
    return k.strip()[:128] or None


def lookup_response(user_id: int | None, scope: str, payload: Any, *, idempotency_key: str | None = None):
    """Claim an idempotency key for ``scope``.

    Returns ``None`` when no key was supplied, ``("hit", body, status)`` for a
    replay, ``("conflict", body, 409)`` when the key was reused with another
    payload and ``("miss", row, 0)`` when the caller should do the work and
    then call :func:`store_response`.
    """
    k = (idempotency_key or get_idempotency_key() or "").strip()[:128]
    if not k:
        return None
    req_hash = _hash_request(scope, payload)
    row = IdempotencyKey.query.filter_by(scope=scope, key=k).first()
    if row is None:
        row = IdempotencyKey(
            key=k,
            scope=scope,
            user_id=int(user_id) if user_id is not None else None,
            request_hash=req_hash,
        )
        try:
            db.session.add(row)
            db.session.commit()
            return ("miss", row, 0)
        except IntegrityError:
            db.session.rollback()
            row = IdempotencyKey.query.filter_by(scope=scope, key=k).first()
            if row is None:
                raise
    if (row.request_hash or "") != req_hash:
        return (
            "conflict",
            {
                "ok": False,
                "error": "IDEMPOTENCY_KEY_REUSE",
                "message": "This Idempotency-Key was already used with a different request payload.",
            },
            409,
        )
    if row.response_json:
        return ("hit", json.loads(row.response_json), int(row.status_code or 200))
    return (
        "conflict",
        {"ok": False, "error": "IDEMPOTENCY_IN_PROGRESS", "message": "Request is still being processed."},
        409,
    )


def store_response(row: IdempotencyKey, response_json: Any, status_code: int) -> None:
    row.response_json = json.dumps(response_json, separators=(",", ":"), default=str)
    row.status_code = int(status_code or 200)
    db.session.add(row)
    db.session.commit()
