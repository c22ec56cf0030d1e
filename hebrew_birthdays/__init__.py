"""
Hebrew Birthday Sync - Hebrew date projection and upkeep for birthday records
"""

__version__ = "1.0.0"
__author__ = "Hebrew Birthday Sync Team"

from .core.hebcal_client import HebcalClient
from .core.projector import HebrewBirthdayProjector

__all__ = [
    "HebcalClient",
    "HebrewBirthdayProjector",
]
