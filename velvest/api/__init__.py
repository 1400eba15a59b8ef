"""
Velvest API

HTTP access to engine snapshots.
"""

from velvest.api.routes import router

__all__ = ["router"]
