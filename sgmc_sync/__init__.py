"""
SGMC Sync - cloud backup and synchronization for the SGMC record store.
"""

__version__ = "1.0.0"
