"""
Sovereign Skies: cross-border hazard alert ingestion and boundary matching.
"""

__version__ = "0.1.0"
