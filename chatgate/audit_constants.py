"""
Canonical audit event type strings.
"""

EVENT_SESSION_CREATED = "session.created"
EVENT_SESSION_ACTIVATED = "session.activated"
EVENT_SESSION_CLOSED = "session.closed"
EVENT_SESSION_RESET = "session.reset"
EVENT_SESSION_COMPACTED = "session.compacted"
EVENT_ACCESS_GRANTED = "access.granted"
EVENT_ACCESS_REVOKED = "access.revoked"
EVENT_IDENTITY_LINKED = "identity.linked"
EVENT_IDENTITY_UNLINKED = "identity.unlinked"
EVENT_CONFIG_UPDATED = "config.updated"
EVENT_BOT_BINDING_UPDATED = "bot_binding.updated"

__all__ = [
    "EVENT_SESSION_CREATED",
    "EVENT_SESSION_ACTIVATED",
    "EVENT_SESSION_CLOSED",
    "EVENT_SESSION_RESET",
    "EVENT_SESSION_COMPACTED",
    "EVENT_ACCESS_GRANTED",
    "EVENT_ACCESS_REVOKED",
    "EVENT_IDENTITY_LINKED",
    "EVENT_IDENTITY_UNLINKED",
    "EVENT_CONFIG_UPDATED",
    "EVENT_BOT_BINDING_UPDATED",
]
