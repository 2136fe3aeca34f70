from datetime import datetime, timedelta, timezone

from jose import ExpiredSignatureError, JWTError, jwt
from passlib.context import CryptContext

from app.config import Settings, settings
from app.core.exceptions import TokenExpiredError, TokenInvalidError
from app.schemas.user import TokenPayload

ALGORITHM = "HS256"

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain: str, hashed: str) -> bool:
    return pwd_context.verify(plain, hashed)


def create_access_token(user_id: str, config: Settings = settings) -> str:
    # Only the user id goes into the token; role is looked up per request
    expire = datetime.now(timezone.utc) + timedelta(days=config.ACCESS_TOKEN_EXPIRE_DAYS)
    to_encode = {
        "sub": user_id,
        "exp": int(expire.timestamp()),
    }
    encoded_jwt = jwt.encode(to_encode, config.SECRET_KEY, algorithm=ALGORITHM)
    return encoded_jwt


def decode_access_token(token: str, config: Settings = settings) -> TokenPayload:
    """Verify signature and expiry. Raises on any failure."""
    try:
        payload = jwt.decode(token, config.SECRET_KEY, algorithms=[ALGORITHM])
    except ExpiredSignatureError:
        raise TokenExpiredError()
    except JWTError:
        raise TokenInvalidError()

    if "sub" not in payload or "exp" not in payload:
        raise TokenInvalidError()
    return TokenPayload(sub=payload["sub"], exp=payload["exp"])
