from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt
from passlib.context import CryptContext

from config import ACCESS_TOKEN_EXPIRE_MINUTES, ALGORITHM, CHANNEL_TOKEN_EXPIRE_MINUTES, SECRET_KEY

# Auth utils
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def user_channel(email: str) -> str:
    return f"user:{email}"


def barber_channel(name: str) -> str:
    return f"barber:{name}"


def create_barber_token(barber_id: str, display_name: str) -> str:
    return create_access_token({"sub": barber_id, "channel": barber_channel(display_name)})


def create_channel_token(email: str, appointment_id: str) -> str:
    """Token a customer presents to follow one booking on their channel."""
    return create_access_token(
        {"sub": email, "channel": user_channel(email), "appointments": [appointment_id]},
        timedelta(minutes=CHANNEL_TOKEN_EXPIRE_MINUTES),
    )


def read_channel_grant(token: Optional[str], channel: str) -> Optional[dict]:
    """Claims of a token that grants the channel, or None."""
    if not token:
        return None
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        return None
    if payload.get("channel") != channel:
        return None
    return payload
