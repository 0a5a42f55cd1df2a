"""Request-scoped feed processing."""

from .pipeline import LatestResultHolder, load_feed_events

__all__ = ["LatestResultHolder", "load_feed_events"]
