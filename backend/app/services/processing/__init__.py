"""
Conversion backends: the in-process engine and the remote delegate
"""

from .delegation import DelegationClient, DelegationReceipt, RemoteDelegate
from .interfaces import ArtifactStorage, MediaConverter
from .local_engine import LocalEngine
from .selector import BackendSelector

__all__ = [
    "ArtifactStorage",
    "BackendSelector",
    "DelegationClient",
    "DelegationReceipt",
    "LocalEngine",
    "MediaConverter",
    "RemoteDelegate"
]
