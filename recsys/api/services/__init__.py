"""
API Services
Request-side helpers layered over the recommendation service.
"""

from .metadata_service import MetadataService

__all__ = [
    "MetadataService",
]
