"""
Local record store access.
"""

from .local_store import LocalStore

__all__ = ["LocalStore"]
