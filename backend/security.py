import base64
import hashlib
import hmac
import json
import logging
import time
from fastapi import HTTPException, Header, Request

logger = logging.getLogger(__name__)

ADMIN_KEY_COOKIE = "admin_api_key"
TOKEN_SALT = b"survey-action"


def verify_admin(request: Request, x_api_key: str = Header(default="")):
    """Reject admin requests without the configured API key (header or cookie)."""
    expected = request.app.state.ctx.settings.admin_api_key
    supplied = x_api_key or request.cookies.get(ADMIN_KEY_COOKIE, "")
    if not supplied or not hmac.compare_digest(supplied, expected):
        raise HTTPException(status_code=401, detail="Invalid admin API key")


def _b64(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def _unb64(text: str) -> bytes:
    raw = text.encode("ascii")
    return base64.urlsafe_b64decode(raw + b"=" * (-len(raw) % 4))


class ActionTokens:
    """Per-action security tokens tied to a target id (e.g. a survey).

    A token is ``base64url(claims).base64url(hmac)`` where the claims name
    the action, the target id and an expiry. One minted for ("delete", 4)
    is rejected for ("delete", 5) and for ("duplicate", 4), and expires
    after `ttl` seconds.
    """

    def __init__(self, secret_key: str, ttl: int = 86400):
        self.key = (secret_key or "").encode("utf-8") + TOKEN_SALT
        self.ttl = ttl

    def _sign(self, payload: bytes) -> bytes:
        return hmac.new(self.key, payload, hashlib.sha256).digest()

    def make(self, action: str, target_id: int = 0) -> str:
        claims = {"a": action, "t": int(target_id), "exp": int(time.time()) + self.ttl}
        payload = json.dumps(claims, separators=(",", ":"), sort_keys=True).encode("utf-8")
        return f"{_b64(payload)}.{_b64(self._sign(payload))}"

    def _claims(self, token: str):
        try:
            payload_b64, sig_b64 = token.rsplit(".", 1)
            payload, sig = _unb64(payload_b64), _unb64(sig_b64)
        except (AttributeError, ValueError, UnicodeEncodeError):
            return None
        if not hmac.compare_digest(sig, self._sign(payload)):
            return None
        try:
            return json.loads(payload.decode("utf-8"))
        except ValueError:
            return None

    def check(self, token: str | None, action: str, target_id: int = 0) -> bool:
        if not token:
            return False
        data = self._claims(token)
        if not isinstance(data, dict):
            logger.warning("Rejected malformed %s token", action)
            return False
        if data.get("a") != action or data.get("t") != int(target_id):
            logger.warning("Rejected %s token for target %s", action, target_id)
            return False
        return int(data.get("exp", 0) or 0) >= int(time.time())
