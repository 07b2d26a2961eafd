from itsdangerous import BadSignature, URLSafeTimedSerializer

from config import get_settings

CSRF_HEADER = "X-CSRF-Token"
TOKEN_MAX_AGE = 2 * 3600


def _serializer() -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(get_settings().csrf_secret, salt="csrf-token")


def generate_csrf_token(user_id: str) -> str:
    """Signed, timestamped token bound to one user."""
    return _serializer().dumps({"u": user_id})


def validate_csrf_token(
    token: str, user_id: str, max_age: int = TOKEN_MAX_AGE
) -> bool:
    if not token:
        return False
    try:
        data = _serializer().loads(token, max_age=max_age)
    except BadSignature:
        # also raised as SignatureExpired once max_age has passed
        return False
    return isinstance(data, dict) and data.get("u") == user_id
