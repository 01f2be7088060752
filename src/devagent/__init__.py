"""devagent: an autonomous developer agent driven over a chat channel."""

__version__ = "0.1.0"
