from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

from jose import JWTError, jwt
from passlib.context import CryptContext

JWT_ALG = "HS256"

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    return pwd_context.verify(password, password_hash)


class TokenIssuer:
    """Firma e verifica i JWT di accesso con segreto e durata presi dai Settings."""

    def __init__(self, secret: str, expire_minutes: int = 60) -> None:
        self.secret = secret
        self.expire_minutes = expire_minutes

    def create_access_token(self, subject: str, extra: dict[str, Any] | None = None) -> str:
        """
        subject: tipicamente user_id.
        Usa datetime timezone-aware per evitare offset/bug su timestamp.
        """
        now = datetime.now(timezone.utc)
        expire = now + timedelta(minutes=self.expire_minutes)

        payload: dict[str, Any] = {
            "sub": subject,
            "iat": int(now.timestamp()),
            "exp": int(expire.timestamp()),
        }
        if extra:
            payload.update(extra)

        return jwt.encode(payload, self.secret, algorithm=JWT_ALG)

    def decode_token(self, token: str) -> dict[str, Any]:
        return jwt.decode(token, self.secret, algorithms=[JWT_ALG])

    def get_subject(self, token: str) -> str | None:
        try:
            payload = self.decode_token(token)
            return payload.get("sub")
        except JWTError:
            return None
