from __future__ import annotations

from datetime import datetime, timedelta, timezone

import jwt

from duo_chat.domain.entities.user import User


class HS256Issuer:
    """Issue access tokens understood by ``HS256Verifier``."""

    def __init__(self, secret: str, algorithm: str = "HS256", ttl_seconds: int = 3600) -> None:
        self._secret = secret
        self._algorithm = algorithm
        self._ttl = timedelta(seconds=ttl_seconds)

    def issue(self, user: User) -> str:
        now = datetime.now(timezone.utc)
        return jwt.encode(
            {
                "sub": str(user.id),
                "username": user.username,
                "iat": now,
                "exp": now + self._ttl,
            },
            self._secret,
            algorithm=self._algorithm,
        )
