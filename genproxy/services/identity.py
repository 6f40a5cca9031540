from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Protocol

from genproxy.errors import AuthenticationError

log = logging.getLogger("genproxy.identity")

BEARER_PREFIX = "Bearer "


@dataclass(frozen=True)
class AuthenticatedSubject:
    uid: str
    claims: Dict[str, Any] = field(default_factory=dict)


class IdentityVerifier(Protocol):
    def verify(self, token: str) -> AuthenticatedSubject:
        """Return the verified subject or raise ``AuthenticationError``."""
        ...


def extract_bearer_token(header: str | None) -> str:
    """Pull the credential out of an ``Authorization: Bearer`` header."""

    if not header or not header.startswith(BEARER_PREFIX):
        raise AuthenticationError("Missing Authorization Bearer token")
    token = header[len(BEARER_PREFIX):].strip()
    if not token:
        raise AuthenticationError("Missing Authorization Bearer token")
    return token


class FirebaseIdentityVerifier:
    """Verify Firebase ID tokens with firebase-admin.

    The Firebase app is initialised on first use so that importing the
    service does not require Google credentials.
    """

    def __init__(self, project_id: Optional[str] = None, *, check_revoked: bool = False) -> None:
        self.project_id = project_id
        self.check_revoked = check_revoked
        self._app = None
        self._lock = threading.Lock()

    def _get_app(self):
        import firebase_admin

        with self._lock:
            if self._app is None:
                try:
                    self._app = firebase_admin.get_app()
                except ValueError:
                    options = {"projectId": self.project_id} if self.project_id else None
                    self._app = firebase_admin.initialize_app(options=options)
                    log.info("[identity] firebase app initialised project=%s", self.project_id)
        return self._app

    def verify(self, token: str) -> AuthenticatedSubject:
        from firebase_admin import auth, exceptions

        app = self._get_app()
        try:
            decoded = auth.verify_id_token(token, app=app, check_revoked=self.check_revoked)
        except (ValueError, exceptions.FirebaseError) as exc:
            log.info("[identity] token rejected: %s", exc)
            raise AuthenticationError("Invalid Firebase ID token") from exc
        return AuthenticatedSubject(uid=str(decoded["uid"]), claims=dict(decoded))


__all__ = [
    "AuthenticatedSubject",
    "FirebaseIdentityVerifier",
    "IdentityVerifier",
    "extract_bearer_token",
]
