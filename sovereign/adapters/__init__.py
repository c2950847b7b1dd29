"""
Adapters for Sovereign Skies.

This module contains the concrete feed clients and reference data
loaders that handle external I/O.
"""

from .nws.client import NWSAlertClient
from .eccc.client import ECCCAlertClient
from .reference.loader import load_boundaries, load_zone_table

__all__ = ["NWSAlertClient", "ECCCAlertClient", "load_boundaries", "load_zone_table"]
