"""Google Calendar sync for fitness events."""

__version__ = "0.1.0"
