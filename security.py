from typing import Optional

from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer
from werkzeug.security import check_password_hash, generate_password_hash

from config import get_settings
from errors import Unauthenticated


def _serializer() -> URLSafeTimedSerializer:
    settings = get_settings()
    return URLSafeTimedSerializer(settings.token_secret, salt="auth-token")


def hash_password(password: str) -> str:
    return generate_password_hash(password)


def verify_password(password_hash: str, password: str) -> bool:
    return check_password_hash(password_hash, password)


def issue_token(user_id: int, email: str, name: str) -> str:
    return _serializer().dumps({"sub": user_id, "email": email, "name": name})


def read_token(token: str, max_age: Optional[int] = None) -> int:
    """Return the subject (user id) of a signed bearer token."""
    if max_age is None:
        max_age = get_settings().token_max_age_secs
    try:
        data = _serializer().loads(token, max_age=max_age)
    except SignatureExpired as exc:
        raise Unauthenticated("Unauthorized - Token expired") from exc
    except BadSignature as exc:
        raise Unauthenticated("Unauthorized - Invalid token") from exc

    subject = data.get("sub") if isinstance(data, dict) else None
    if not isinstance(subject, int):
        raise Unauthenticated("Unauthorized - Invalid token")
    return subject


def bearer_token(authorization: Optional[str]) -> str:
    if not authorization or not authorization.startswith("Bearer "):
        raise Unauthenticated("Unauthorized - Missing or invalid token")
    token = authorization[len("Bearer ") :].strip()
    if not token:
        raise Unauthenticated("Unauthorized - Missing or invalid token")
    return token
