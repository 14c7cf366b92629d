# branch_ledger/config.py

import os
import logging
from dotenv import load_dotenv
from typing import Dict, Any, Optional

# Initialize logger
logger = logging.getLogger(__name__)
logging.basicConfig(level=logging.INFO)


def is_running_on_streamlit_cloud() -> bool:
    """Detect if running on Streamlit Cloud"""
    try:
        import streamlit as st
        return hasattr(st, 'secrets') and "DB_CONFIG" in st.secrets
    except Exception:
        return False


class Config:
    """Centralized configuration management for the branch ledger"""

    def __init__(self):
        self.is_cloud = is_running_on_streamlit_cloud()
        self._load_config()

    def _load_config(self):
        """Load configuration based on environment"""
        if self.is_cloud:
            self._load_cloud_config()
        else:
            self._load_local_config()

        # Common configuration
        self._load_app_config()

    def _load_cloud_config(self):
        """Load configuration from Streamlit Cloud secrets"""
        import streamlit as st

        # Database configuration
        self.db_config = dict(st.secrets["DB_CONFIG"])

        logger.info("☁️  Running in STREAMLIT CLOUD")
        self._log_config_status()

    def _load_local_config(self):
        """Load configuration from local environment"""
        # Load .env file
        load_dotenv()

        # Database configuration - a full URL wins over the individual parts
        self.db_config = {
            "url": os.getenv("DB_URL"),
            "host": os.getenv("DB_HOST"),
            "port": int(os.getenv("DB_PORT", "3306")),
            "user": os.getenv("DB_USER"),
            "password": os.getenv("DB_PASSWORD"),
            "database": os.getenv("DB_NAME", os.getenv("DB_DATABASE", "branch_ledger")),
            "sqlite_path": os.getenv("DB_SQLITE_PATH", "branch_ledger.db")
        }

        logger.info("💻 Running in LOCAL environment")
        self._log_config_status()

    def _load_app_config(self):
        """Load application-specific configuration"""
        self.app_config = {
            # Numbering
            "MANIFEST_NUMBER_PREFIX": os.getenv("MANIFEST_NUMBER_PREFIX", "BOL"),
            "SEQUENCE_PAD_WIDTH": int(os.getenv("SEQUENCE_PAD_WIDTH", "3")),

            # Money
            "DEFAULT_CURRENCY": os.getenv("DEFAULT_CURRENCY", "USD"),

            # Performance
            "DB_POOL_SIZE": int(os.getenv("DB_POOL_SIZE", "5")),
            "DB_POOL_RECYCLE": int(os.getenv("DB_POOL_RECYCLE", "3600")),

            # Features
            "ENABLE_BULK_DISPATCH": os.getenv("ENABLE_BULK_DISPATCH", "true").lower() == "true",
        }

    def _log_config_status(self):
        """Log database configuration status"""
        logger.info("─" * 55)
        logger.info("📊 DATABASE CONFIGURATION")

        if self.db_config.get('url'):
            logger.info("   ✅ URL: configured")
        elif self.db_config.get('host'):
            db_host = self.db_config.get('host')
            db_port = self.db_config.get('port', 3306)
            logger.info(f"   ✅ Host: {db_host}:{db_port}")
            logger.info(f"   ✅ Database: {self.db_config.get('database')}")
            if not self.db_config.get('user') or not self.db_config.get('password'):
                logger.warning("   ⚠️  User/Password: MISSING - connections will FAIL!")
        else:
            logger.info(f"   ℹ️  No server configured, using SQLite file {self.db_config.get('sqlite_path')}")
        logger.info("─" * 55)

    def get_db_config(self) -> Dict[str, Any]:
        """Get database configuration"""
        return self.db_config.copy()

    def get_db_url(self) -> str:
        """Build the SQLAlchemy URL for the document store"""
        if self.db_config.get('url'):
            return self.db_config['url']

        host = self.db_config.get('host')
        if host:
            return (
                f"mysql+pymysql://{self.db_config.get('user')}:{self.db_config.get('password')}"
                f"@{host}:{self.db_config.get('port', 3306)}/{self.db_config.get('database')}"
            )

        return f"sqlite:///{self.db_config.get('sqlite_path', 'branch_ledger.db')}"

    def get_app_setting(self, key: str, default: Any = None) -> Any:
        """Get application setting"""
        return self.app_config.get(key, default)

    def is_feature_enabled(self, feature: str) -> bool:
        """Check if a feature is enabled"""
        return self.app_config.get(f"ENABLE_{feature.upper()}", True)


# Create singleton instance
config = Config()

# Export commonly used values
IS_RUNNING_ON_CLOUD = config.is_cloud
DB_CONFIG = config.db_config
APP_CONFIG = config.app_config


__all__ = [
    'config',
    'Config',
    'IS_RUNNING_ON_CLOUD',
    'DB_CONFIG',
    'APP_CONFIG',
]
