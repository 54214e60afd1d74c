"""Event sources (concrete producers of payment events).

Each module implements `core.interfaces.event_source.EventSource`.
"""

from adapters.event_sources.http_feed import HttpFeedEventSource
from adapters.event_sources.push import PushEventSource
from adapters.event_sources.synthetic import SyntheticEventSource

__all__ = [
	"HttpFeedEventSource",
	"PushEventSource",
	"SyntheticEventSource",
]
