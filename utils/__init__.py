"""Process-local helpers: session cache and temp file housekeeping."""

from .ttl_cache import TTLCache, session_key
from .tempfiles import TempFiles, Housekeeper


__all__ = [
    'TTLCache',
    'session_key',
    'TempFiles',
    'Housekeeper',
]
