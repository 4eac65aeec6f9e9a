# Session Auth Core Module
from .config import get_settings, settings
from .database import Base, async_session_maker, check_db_connection, engine, get_db, init_models
from .logging import setup_logging

__all__ = [
    "settings",
    "get_settings",
    "setup_logging",
    "Base",
    "engine",
    "async_session_maker",
    "get_db",
    "init_models",
    "check_db_connection",
]
