"""
Shared Flask extension instances.

Created as a separate module to avoid circular imports when models and
blueprints need access to extensions that are initialised in create_app().
"""

from flask_limiter import Limiter
from flask_sqlalchemy import SQLAlchemy

from laundry.rate_limit import client_key

db = SQLAlchemy()

# Limiter is created without an app; init_app() is called in create_app().
# No default limits: every route opts into a preset with rate_limited(), and
# those counters share the storage Limiter opens from RATELIMIT_STORAGE_URI.
limiter = Limiter(key_func=client_key)
