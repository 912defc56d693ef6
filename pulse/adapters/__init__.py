"""
Event feed adapters.

Adapters normalize raw event-store documents into strict Event objects once,
at the boundary, and report the records they had to skip.
"""

from .base_adapter import BaseAdapter
from .event_feed_adapter import EventFeedAdapter

__all__ = [
    "BaseAdapter",
    "EventFeedAdapter",
]
