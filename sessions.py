import secrets
from typing import Optional

import bcrypt
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from config import get_settings


def _serializer() -> URLSafeTimedSerializer:
    settings = get_settings()
    return URLSafeTimedSerializer(settings.session_secret, salt="session-token")


def issue_session_token(user_id: int) -> str:
    return _serializer().dumps({"u": user_id})


def read_session_token(token: str, max_age_hours: Optional[int] = None) -> Optional[int]:
    """Return the user id carried by a session token, or None when the token
    is tampered with, malformed or older than the configured max age."""
    if max_age_hours is None:
        max_age_hours = get_settings().session_max_age_hours
    try:
        data = _serializer().loads(token, max_age=max_age_hours * 3600)
    except SignatureExpired:
        return None
    except BadSignature:
        return None
    user_id = data.get("u") if isinstance(data, dict) else None
    if not isinstance(user_id, int):
        return None
    return user_id


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def generate_invitation_token() -> str:
    # 32 random bytes rendered as 64 hex characters
    return secrets.token_hex(32)
