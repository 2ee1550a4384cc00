"""
Review source adapters
Managed scrape job, direct HTML, endpoint replay and third-party API
"""

from .base import ReviewSourceAdapter
from .factory import AdapterFactory, create_adapter

__all__ = ['ReviewSourceAdapter', 'AdapterFactory', 'create_adapter']
