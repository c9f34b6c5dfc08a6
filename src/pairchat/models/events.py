"""
Change-stream event names.
"""


class ChangeKind:
    INSERT = "INSERT"
    UPDATE = "UPDATE"


class StreamEvent:
    """Socket.IO event names used by the change-stream transport."""
    READY = "ready"
    SUBSCRIBE = "subscribe"
    CHANGE = "change"
