"""
Port interfaces for Sovereign Skies.

This module defines the port interfaces (Protocols) that define
the contracts between the poll pipeline and upstream feed adapters.
"""

from .feed import AlertFeedPort

__all__ = ["AlertFeedPort"]
