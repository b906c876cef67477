"""CSRF tokens bound to the editing session."""

from __future__ import annotations

import base64
import logging
import os
import uuid

from cryptography.fernet import Fernet, InvalidToken

from frontedit.errors import SecurityError

_logger = logging.getLogger("frontedit.csrf")

TOKEN_HEADER = "X-CSRF-Token"
TOKEN_FIELD = "csrf"
DEFAULT_TTL_S = 4 * 60 * 60


def _fernet_from_key(key: str) -> Fernet:
    key = key.strip()
    try:
        # Accept raw 32-byte secret or 32-byte urlsafe b64 key
        if len(key) == 32:
            key = base64.urlsafe_b64encode(key.encode("utf-8")).decode("utf-8")
        return Fernet(key.encode("utf-8"))
    except Exception as exc:
        raise SecurityError("Invalid APP_SECRET_KEY") from exc


class CsrfGuard:
    def __init__(self, secret_key: str | None = None, ttl_s: int = DEFAULT_TTL_S) -> None:
        if not secret_key:
            _logger.warning("csrf_ephemeral_key reason=APP_SECRET_KEY not set")
            secret_key = Fernet.generate_key().decode("utf-8")
        self._fernet = _fernet_from_key(secret_key)
        self._ttl_s = ttl_s

    @classmethod
    def from_env(cls) -> "CsrfGuard":
        ttl = int(os.getenv("FRONTEDIT_CSRF_TTL", str(DEFAULT_TTL_S)))
        return cls(os.getenv("APP_SECRET_KEY", "").strip() or None, ttl_s=ttl)

    def issue(self, session_id: str) -> str:
        payload = f"{session_id}:{uuid.uuid4().hex}"
        return self._fernet.encrypt(payload.encode("utf-8")).decode("utf-8")

    def validate(self, session_id: str, token: str | None) -> None:
        if not token:
            raise SecurityError("Missing CSRF token")
        try:
            payload = self._fernet.decrypt(token.encode("utf-8"), ttl=self._ttl_s).decode("utf-8")
        except (InvalidToken, ValueError) as exc:
            raise SecurityError("Invalid CSRF token") from exc
        bound_session, _, _ = payload.rpartition(":")
        if bound_session != str(session_id):
            raise SecurityError("CSRF token belongs to another session")
