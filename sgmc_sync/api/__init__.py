"""
Local control API.
"""

from .routes import create_sync_router
from .server import ControlServer, status_code_for

__all__ = ["ControlServer", "create_sync_router", "status_code_for"]
