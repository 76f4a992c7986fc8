from dataclasses import dataclass
from typing import Optional

from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer
from passlib.context import CryptContext

from craftstore.core.config import get_settings


password_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

TOKEN_SALT = "craftstore.bearer"


@dataclass(frozen=True)
class TokenPayload:
    id: str
    email: str
    role: str


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Return True when the provided password matches the stored hash."""
    if not plain_password or not hashed_password:
        return False
    return password_context.verify(plain_password, hashed_password)


def hash_password(password: str) -> str:
    """Hash the provided password for storage."""
    return password_context.hash(password)


def _serializer(secret_key: Optional[str] = None) -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(secret_key or get_settings().secret_key, salt=TOKEN_SALT)


def issue_token(user_id: str, email: str, role: str) -> str:
    """Sign a bearer token carrying the user's id, email and role."""
    return _serializer().dumps({"id": user_id, "email": email, "role": role})


def token_max_age(role: str) -> int:
    settings = get_settings()
    return settings.admin_token_max_age if role == "admin" else settings.customer_token_max_age


def decode_token(token: str) -> Optional[TokenPayload]:
    """Return the payload of a valid, unexpired token, or None."""
    serializer = _serializer()
    try:
        data, issued_at = serializer.loads(token, return_timestamp=True)
    except (BadSignature, SignatureExpired):
        return None
    if not isinstance(data, dict) or not all(data.get(field) for field in ("id", "email", "role")):
        return None
    try:
        serializer.loads(token, max_age=token_max_age(data["role"]))
    except SignatureExpired:
        return None
    return TokenPayload(id=data["id"], email=data["email"], role=data["role"])
