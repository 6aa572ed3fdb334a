from slowapi import Limiter
from slowapi.util import get_remote_address

from basma_clinic.config import get_settings

settings = get_settings()

# Global limiter instance reused across the app; writes get a tighter per-route limit
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[settings.RATE_LIMIT_DEFAULT],
    enabled=settings.RATE_LIMIT_ENABLED,
)
WRITE_LIMIT = settings.RATE_LIMIT_WRITES
