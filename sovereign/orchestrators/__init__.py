"""
Orchestrators for Sovereign Skies.

This module contains the poll orchestrator that coordinates
the flow between feed ports and the core pipeline.
"""
from .poller import AlertPoller, PollSnapshot

__all__ = ["AlertPoller", "PollSnapshot"]
