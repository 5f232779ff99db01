# backend/app/routes/__init__.py
"""
Route modules. Versioned API endpoints live under ``routes.v1``.
"""

from . import prometheus

__all__ = ["prometheus"]
