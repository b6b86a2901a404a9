"""
Presence Service Package

This package tracks which launcher clients are online, streams their
privacy-filtered presence to real-time observers and keeps lifetime
statistics.
"""

from .app.core.presence_manager import PresenceManager

__all__ = ["PresenceManager"]
