"""Double-submit CSRF tokens.

A fresh token is issued with every session and delivered in a cookie that
client scripts can read; state-changing requests echo it in a header.
Nothing is stored server-side.
"""

import secrets
import uuid

from saas_server.core.logging import log_security_event
from saas_server.services.errors import CSRFMismatchError

CSRF_COOKIE_NAME = "csrf_token"
CSRF_HEADER_NAME = "X-CSRF-Token"


class CSRFGuard:
    def generate(self) -> str:
        return str(uuid.uuid4())

    def check(self, header_value: str | None, cookie_value: str | None) -> None:
        """Pass iff both values are present, non-empty and equal."""
        if not header_value or not cookie_value:
            log_security_event("csrf_mismatch", "token missing")
            raise CSRFMismatchError("CSRF token missing")
        if not secrets.compare_digest(header_value.encode(), cookie_value.encode()):
            log_security_event("csrf_mismatch", "header does not match cookie")
            raise CSRFMismatchError("CSRF token mismatch")
