"""
Transfer session implementations.

This module contains the concrete secure transfer sessions.
"""

from .ssh import SftpSession, open_ssh_client

__all__ = [
    'SftpSession',
    'open_ssh_client',
]
