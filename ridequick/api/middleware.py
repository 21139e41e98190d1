"""Rate limiting shared by every router."""

from slowapi import Limiter
from slowapi.util import get_remote_address

from ridequick.config import get_settings

limiter = Limiter(key_func=get_remote_address)


def rate_limit() -> str:
    return get_settings().rate_limit
