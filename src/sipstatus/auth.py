"""Shared-password login backed by an encrypted session cookie.

The rest of the package only ever asks one question: is this caller
authenticated? The answer lives in a Fernet token stored in a cookie, so no
server-side session table is needed.
"""

from __future__ import annotations

import hmac
import json
import logging

from aiohttp import web
from cryptography.fernet import Fernet, InvalidToken

from sipstatus._constants import SESSION_COOKIE_NAME, SESSION_LIFETIME_SECONDS
from sipstatus.exceptions import ConfigError

_logger = logging.getLogger(__name__)


class SessionAuthenticator:
    def __init__(
        self,
        admin_password: str,
        *,
        key: str | bytes | None = None,
        lifetime: float = SESSION_LIFETIME_SECONDS,
        secure_cookie: bool = True,
        cookie_name: str = SESSION_COOKIE_NAME,
    ) -> None:
        if key is None:
            _logger.info("No SESSION_KEY configured; sessions will not survive a restart")
            key = Fernet.generate_key()
        try:
            self._fernet = Fernet(key)
        except ValueError as exc:
            raise ConfigError("SESSION_KEY must be a url-safe base64 encoded 32-byte key") from exc
        self._admin_password = admin_password
        self._lifetime = lifetime
        self._secure_cookie = secure_cookie
        self._cookie_name = cookie_name

    @property
    def login_enabled(self) -> bool:
        return bool(self._admin_password)

    def check_password(self, password: str) -> bool:
        """Constant-time comparison; always ``False`` when login is disabled."""
        if not self.login_enabled:
            return False
        return hmac.compare_digest(password.encode("utf-8"), self._admin_password.encode("utf-8"))

    def issue_token(self) -> str:
        payload = json.dumps({"authenticated": True}).encode("utf-8")
        return self._fernet.encrypt(payload).decode("ascii")

    def token_is_valid(self, token: str) -> bool:
        try:
            payload = self._fernet.decrypt(token.encode("ascii"), ttl=int(self._lifetime))
        except (InvalidToken, UnicodeEncodeError):
            return False
        try:
            data = json.loads(payload)
        except json.JSONDecodeError:
            return False
        return isinstance(data, dict) and data.get("authenticated") is True

    def is_authenticated(self, request: web.Request) -> bool:
        token = request.cookies.get(self._cookie_name)
        if not token:
            return False
        return self.token_is_valid(token)

    def login(self, response: web.StreamResponse) -> None:
        """Attach a fresh session cookie to *response*."""
        response.set_cookie(
            self._cookie_name,
            self.issue_token(),
            max_age=int(self._lifetime),
            path="/",
            secure=self._secure_cookie,
            httponly=True,
            samesite="Strict",
        )
