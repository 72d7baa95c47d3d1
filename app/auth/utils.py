import logging
import secrets
from datetime import datetime, timedelta
from typing import Optional

from jose import ExpiredSignatureError, JWTError, jwt
from passlib.context import CryptContext

from app.config import (
    BCRYPT_ROUNDS,
    JWT_ALGORITHM,
    JWT_AUDIENCE,
    JWT_EXPIRES_IN_DAYS,
    JWT_ISSUER,
    JWT_REFRESH_EXPIRES_IN_DAYS,
    JWT_REFRESH_SECRET,
    JWT_SECRET,
)
from app.errors import AuthenticationError

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=BCRYPT_ROUNDS)

ACCESS_TOKEN_EXPIRE = timedelta(days=JWT_EXPIRES_IN_DAYS)
REFRESH_TOKEN_EXPIRE = timedelta(days=JWT_REFRESH_EXPIRES_IN_DAYS)


def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    if not hashed_password:
        return False
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def _create_token(user, token_type: str, secret: str, expires_delta: timedelta) -> str:
    now = datetime.utcnow()
    to_encode = {
        "sub": user.id,
        "email": user.email,
        "role": user.role.value,
        "type": token_type,
        "iat": now,
        "exp": now + expires_delta,
        "iss": JWT_ISSUER,
        "aud": JWT_AUDIENCE,
        "jti": secrets.token_hex(8),
    }
    return jwt.encode(to_encode, secret, algorithm=JWT_ALGORITHM)


def create_access_token(user) -> str:
    return _create_token(user, "access", JWT_SECRET, ACCESS_TOKEN_EXPIRE)


def create_refresh_token(user) -> str:
    return _create_token(user, "refresh", JWT_REFRESH_SECRET, REFRESH_TOKEN_EXPIRE)


def verify_token(token: str, token_type: str = "access") -> dict:
    """Decode a token and check its type. Raises AuthenticationError on any failure."""
    secret = JWT_SECRET if token_type == "access" else JWT_REFRESH_SECRET
    try:
        payload = jwt.decode(
            token,
            secret,
            algorithms=[JWT_ALGORITHM],
            audience=JWT_AUDIENCE,
            issuer=JWT_ISSUER,
        )
    except ExpiredSignatureError:
        raise AuthenticationError.token_expired()
    except JWTError as e:
        logger.warning(f"JWT verification failed: {e}")
        raise AuthenticationError.token_invalid()

    if payload.get("type") != token_type or not payload.get("sub"):
        raise AuthenticationError.token_invalid()
    return payload

