# branch_ledger/db.py

import logging
from typing import Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine

from .config import config

logger = logging.getLogger(__name__)

_engine: Optional[Engine] = None


def get_db_engine() -> Engine:
    """Get the process-wide SQLAlchemy engine for the document store"""
    global _engine
    if _engine is None:
        url = config.get_db_url()
        if url.startswith("sqlite"):
            _engine = create_engine(url, pool_pre_ping=True)
        else:
            _engine = create_engine(
                url,
                pool_pre_ping=True,
                pool_size=config.get_app_setting('DB_POOL_SIZE', 5),
                pool_recycle=config.get_app_setting('DB_POOL_RECYCLE', 3600)
            )
        logger.info(f"Database engine created for dialect '{_engine.dialect.name}'")
    return _engine


def reset_db_engine():
    """Dispose the cached engine so the next call builds a fresh one"""
    global _engine
    if _engine is not None:
        _engine.dispose()
        _engine = None
