"""Chorus community membership and moderation core."""

__version__ = "0.1.0"
