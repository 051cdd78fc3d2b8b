"""Collaborators that supply content and accept published shares."""

from .base_source import ContentSource, ShareRegistry
from .content_cache import ContentCache
from .kernel_client import KernelClient
from .share_client import ShareApiClient

__all__ = [
    'ContentSource',
    'ShareRegistry',
    'ContentCache',
    'KernelClient',
    'ShareApiClient',
]
