"""
API module: the REST transport over the platform services.
"""

from .rest_api import LyceumRestAPI

__all__ = [
    "LyceumRestAPI",
]
