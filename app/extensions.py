"""
Shared Flask extension instances.

Centralized to avoid circular imports. Extensions are created here but
configured in create_app().
"""

import os
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_wtf import CSRFProtect
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

db = SQLAlchemy()
migrate = Migrate()
csrf = CSRFProtect()


def get_client_ip():
    """Client IP for rate limiting, honoring the first X-Forwarded-For hop."""
    try:
        from flask import request
        forwarded_for = request.headers.get('X-Forwarded-For')
        if forwarded_for:
            return forwarded_for.split(',')[0].strip()
        return request.remote_addr
    except RuntimeError:
        return get_remote_address()


# Memory storage in CI/testing, Redis otherwise
if os.environ.get('RATELIMIT_STORAGE_URI'):
    storage_uri = os.environ.get('RATELIMIT_STORAGE_URI')
elif os.environ.get('CI') or os.environ.get('GITHUB_ACTIONS'):
    storage_uri = 'memory://'
elif os.environ.get('REDIS_URL'):
    storage_uri = os.environ.get('REDIS_URL')
else:
    storage_uri = 'redis://localhost:6379'

limiter = Limiter(
    key_func=get_client_ip,
    default_limits=["1000 per day", "300 per hour"],
    storage_uri=storage_uri,
    strategy="fixed-window"
)
