"""SOS alert API: alert lifecycle, trigger processing and notification dispatch."""

__version__ = "0.1.0"
