"""
API module for the REST surface.
"""

from .rest_api import FeePortalRestAPI

__all__ = [
    "FeePortalRestAPI",
]
