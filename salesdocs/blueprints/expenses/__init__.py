"""
salesdocs/blueprints/expenses/__init__.py

Blueprint package export.
"""

from __future__ import annotations

from .routes import expenses_bp  # noqa: F401
