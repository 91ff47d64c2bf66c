"""Password hashing and bearer tokens."""

from datetime import UTC, datetime, timedelta

from jose import JWTError, jwt
from passlib.context import CryptContext

from src.config import get_settings

settings = get_settings()

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    """Salted bcrypt hash; the plain password is never stored."""
    return pwd_context.hash(password)


def create_access_token(user_id: int) -> str:
    """Signed token naming the user in its ``sub`` claim."""
    expires_at = datetime.now(UTC) + timedelta(minutes=settings.jwt_expiration_minutes)
    claims = {"sub": str(user_id), "exp": expires_at}
    return jwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> int | None:
    """Return the user id a token was issued for.

    Expired, forged or malformed tokens, and tokens without a numeric
    subject, all give ``None``.
    """
    try:
        claims = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError:
        return None

    subject = claims.get("sub")
    if subject is None or not str(subject).isdigit():
        return None
    return int(subject)
