"""Coin daemon access: JSON-RPC client and address decoding."""

from .addresses import get_version_byte
from .rpc import DaemonClient

__all__ = [
    'DaemonClient',
    'get_version_byte'
]
