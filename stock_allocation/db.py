# stock_allocation/db.py

import logging
from typing import Optional
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine

from .config import config

logger = logging.getLogger(__name__)

_engine: Optional[Engine] = None


def get_db_engine() -> Engine:
    """Get cached SQLAlchemy engine built from configuration"""
    global _engine
    if _engine is None:
        url = config.get_database_url()
        options = {"pool_pre_ping": True}

        # SQLite uses a single-connection pool that rejects sizing options
        if not url.startswith("sqlite"):
            options["pool_size"] = config.get_app_setting("DB_POOL_SIZE", 5)
            options["pool_recycle"] = config.get_app_setting("DB_POOL_RECYCLE", 3600)

        _engine = create_engine(url, **options)
        logger.info(f"Database engine created for {_engine.url.render_as_string(hide_password=True)}")
    return _engine


def reset_db_engine() -> None:
    """Dispose the cached engine so the next call rebuilds it"""
    global _engine
    if _engine is not None:
        _engine.dispose()
        _engine = None
