"""Real-time change notifications for connected viewers."""

from .hub import ChangeBroadcaster, ChangeType, Subscriber, build_message

__all__ = ["ChangeBroadcaster", "ChangeType", "Subscriber", "build_message"]
