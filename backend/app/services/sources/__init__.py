"""
Source URL resolution and download
"""

from .resolver import SUPPORTED_DOMAINS, SUPPORTED_EXTENSIONS, SourceResolver

__all__ = ["SourceResolver", "SUPPORTED_DOMAINS", "SUPPORTED_EXTENSIONS"]
