from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime

USERNAME_MIN_LENGTH = 3
USERNAME_MAX_LENGTH = 20
_USERNAME_RE = re.compile(r"^[A-Za-z0-9_]+$")


@dataclass(frozen=True, slots=True)
class User:
    id: int
    username: str
    current_connection_id: int | None
    created_at: datetime


def is_valid_username(username: str) -> bool:
    return (
        USERNAME_MIN_LENGTH <= len(username) <= USERNAME_MAX_LENGTH
        and _USERNAME_RE.match(username) is not None
    )
