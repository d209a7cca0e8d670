"""
Package entry point for SGMC Sync.
"""
import sys

from .exceptions import SyncAppException
from .main import run


if __name__ == "__main__":
    try:
        run()
    except SyncAppException as e:
        print(f"FATAL: {e.to_log_string()}", flush=True, file=sys.stderr)
        sys.exit(1)
