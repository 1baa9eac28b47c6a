"""
Event system for turfwar: async pub/sub between gang services and listeners.
"""

from turfwar.core.event.bus import CallbackType, EventBus, EventListener, EventPayload, ListenerPriority

__all__ = ["EventBus", "EventListener", "EventPayload", "CallbackType", "ListenerPriority"]
