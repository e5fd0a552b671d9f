import hashlib
import secrets
from typing import Any

from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer
from passlib.context import CryptContext

from watchearn.core.config import Settings
from watchearn.core.exceptions import ForbiddenError

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    if not password_hash:
        return False
    return pwd_context.verify(password, password_hash)


class TokenSigner:
    """Signs and verifies bearer tokens carrying the account id."""

    def __init__(self, settings: Settings) -> None:
        self._serializer = URLSafeTimedSerializer(
            settings.secret_key,
            salt="watchearn-session",
            signer_kwargs={"key_derivation": "hmac", "digest_method": hashlib.sha256},
        )
        self.max_age_seconds = settings.token_max_age_seconds

    def issue(self, payload: dict[str, Any]) -> str:
        return self._serializer.dumps(payload)

    def load(self, token: str) -> dict[str, Any] | None:
        try:
            return self._serializer.loads(token, max_age=self.max_age_seconds)
        except (BadSignature, SignatureExpired):
            return None


def generate_reset_token() -> str:
    return secrets.token_urlsafe(32)


def hash_reset_token(token: str) -> str:
    # Only the digest is stored; the raw token travels by email
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def generate_referral_code() -> str:
    return secrets.token_hex(4).upper()


def authorize(account: Any) -> bool:
    """Role check for admin-only operations."""
    return bool(account is not None and getattr(account, "is_admin", False) and not getattr(account, "is_blocked", False))


def ensure_admin(account: Any) -> None:
    if not authorize(account):
        raise ForbiddenError("Admin only")
