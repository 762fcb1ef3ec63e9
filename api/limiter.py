"""
api/limiter.py -- Shared slowapi rate limiter instance.

Import this in api/main.py (to mount as middleware) and in the v1 routers
(to apply per-route limits with @limiter.limit()).

Three ceilings, all per client IP:
  general_limit -- default_limits, applied by SlowAPIMiddleware to every route.
  auth_limit    -- signup, login, OAuth begin/callback, complete-profile.
  upload_limit  -- routes that accept a picture upload.

The limit values are callables, so slowapi resolves them per request from
whatever create_app() last passed to configure_limits(). Until then the
Settings field defaults apply. Nothing here reads the environment.

Using a single shared instance ensures all routes share the same in-memory
counter store.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from core.config import Settings

_active: dict[str, str] = {
    "general": Settings.model_fields["general_rate_limit"].default,
    "auth": Settings.model_fields["auth_rate_limit"].default,
    "upload": Settings.model_fields["upload_rate_limit"].default,
}


def configure_limits(settings: Settings) -> None:
    """Point the shared limiter at the ceilings from *settings*."""
    _active["general"] = settings.general_rate_limit
    _active["auth"] = settings.auth_rate_limit
    _active["upload"] = settings.upload_rate_limit


def general_limit() -> str:
    return _active["general"]


def auth_limit() -> str:
    return _active["auth"]


def upload_limit() -> str:
    return _active["upload"]


limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[general_limit],
    storage_uri="memory://",
)
