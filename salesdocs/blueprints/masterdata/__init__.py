"""
salesdocs/blueprints/masterdata/__init__.py

Blueprint package export.
"""

from __future__ import annotations

from .routes import masterdata_bp  # noqa: F401
