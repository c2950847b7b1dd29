"""
Core domain models and pure functions for Sovereign Skies.

This module contains the domain models and pure business logic
that are independent of external I/O and infrastructure concerns.
"""

from .models import Alert, Boundary, Geometry, MatchResult, Source, UnifiedSeverity

__all__ = ["Alert", "Boundary", "Geometry", "MatchResult", "Source", "UnifiedSeverity"]
