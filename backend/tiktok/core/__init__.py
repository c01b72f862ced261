"""Core modules for the TikTok relay."""

from .client import make_client_factory
from .config import BACKEND_DIR, TIKTOK_DIR, get_settings, validate_env_vars
from .event_sink import EventSink
from .health_server import HealthCheckServer
from .logging import setup_logging
from .pg_listener import pg_listen
from .session_manager import EngineContext, SessionManager, normalize_handle

__all__ = [
    # Settings
    "get_settings",
    "validate_env_vars",
    # Path Constants
    "TIKTOK_DIR",
    "BACKEND_DIR",
    # Setup functions
    "setup_logging",
    # Services
    "HealthCheckServer",
    "EventSink",
    "SessionManager",
    "EngineContext",
    "normalize_handle",
    # TikTokLive
    "make_client_factory",
    # PG Listener
    "pg_listen",
]
