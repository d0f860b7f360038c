from jose import jwt
from datetime import datetime, timedelta, timezone
from passlib.context import CryptContext
from filyo.core.config import settings
import secrets
import uuid

pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=settings.bcrypt_rounds,
)
ALGORITHM = "HS256"
TOKEN_LENGTH = 16


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain: str, hashed: str) -> bool:
    return pwd_context.verify(plain, hashed)


def create_access_token(user_id: int, role: str, expires_minutes: int | None = None) -> str:
    expire = datetime.now(timezone.utc) + timedelta(
        minutes=(expires_minutes or settings.access_token_expire_minutes)
    )
    jti = str(uuid.uuid4())
    payload = {"sub": str(user_id), "role": role, "exp": expire, "jti": jti}
    token = jwt.encode(payload, settings.secret_key, algorithm=ALGORITHM)
    return token


def decode_token(token: str) -> dict:
    payload = jwt.decode(token, settings.secret_key, algorithms=[ALGORITHM])
    return payload


def generate_token(length: int = TOKEN_LENGTH) -> str:
    """URL-safe capability token for shares and upload requests."""
    return secrets.token_urlsafe(length)[:length]
