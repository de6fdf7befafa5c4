import time
from typing import Optional

from itsdangerous import BadSignature, URLSafeTimedSerializer

from config import get_settings

SESSION_COOKIE = "finance_session"


def _serializer() -> URLSafeTimedSerializer:
    settings = get_settings()
    return URLSafeTimedSerializer(settings.session_secret, salt="session")


def session_max_age_secs() -> int:
    return get_settings().session_max_age_hours * 3600


def issue_session_token(user_id: int) -> str:
    serializer = _serializer()
    token_data = {"u": user_id, "iat": int(time.time())}
    return serializer.dumps(token_data)


def read_session_token(token: Optional[str]) -> Optional[int]:
    """Return the user id carried by a valid token, or None."""
    if not token:
        return None
    serializer = _serializer()
    try:
        data = serializer.loads(token, max_age=session_max_age_secs())
    except BadSignature:
        # SignatureExpired is a BadSignature too.
        return None

    user_id = data.get("u") if isinstance(data, dict) else None
    if not isinstance(user_id, int):
        return None
    return user_id
