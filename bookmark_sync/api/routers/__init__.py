"""Admin API routers."""

from . import admin

__all__ = ["admin"]
