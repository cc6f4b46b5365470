from __future__ import annotations

from enum import StrEnum


class ConnectionStatus(StrEnum):
    PENDING = "pending"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"


class RequestStatus(StrEnum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class DisconnectReason(StrEnum):
    USER_INITIATED = "user_initiated"
    TRANSPORT_LOST = "transport_lost"
