"""Integration event types written to the outbox and relayed to Redis."""
from __future__ import annotations

CONNECTION_REQUESTED = "duo.connection_requested"
CONNECTION_ESTABLISHED = "duo.connection_established"
CONNECTION_ENDED = "duo.connection_ended"
MESSAGE_CREATED = "duo.message_created"
