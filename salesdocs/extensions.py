"""
salesdocs/extensions.py

Flask extension singletons, bound to the app in create_app().

NOTE:
- The list cache lives in app.extensions["list_cache"], one per app, so
  apps built side by side (tests) never see each other's tenant lists.
"""

from flask import current_app
from flask_login import LoginManager
from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy
from flask_wtf import CSRFProtect

from .cache import ScopedListCache

db = SQLAlchemy()
migrate = Migrate()
login_manager = LoginManager()
csrf = CSRFProtect()


def init_list_cache(app) -> ScopedListCache:
    cache = ScopedListCache(ttl_seconds=app.config.get("LIST_CACHE_TTL_SECONDS", 300))
    app.extensions["list_cache"] = cache
    return cache


def get_list_cache() -> ScopedListCache:
    return current_app.extensions["list_cache"]
