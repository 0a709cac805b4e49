# stock_allocation/config.py

import os
import logging
from dotenv import load_dotenv
from typing import Dict, Any, Optional

# Initialize logger
logger = logging.getLogger(__name__)


class Config:
    """Centralized configuration management for the stock allocation engine"""

    def __init__(self):
        self._load_config()

    def _load_config(self):
        """Load configuration from the local environment"""
        # Load .env file
        load_dotenv()

        self._load_db_config()
        self._load_app_config()
        self._log_config_status()

    def _load_db_config(self):
        """Load database configuration - validated only when an engine is requested"""
        self.database_url = os.getenv("DATABASE_URL")
        self.db_config = {
            "driver": os.getenv("DB_DRIVER", "mysql+pymysql"),
            "host": os.getenv("DB_HOST"),
            "port": int(os.getenv("DB_PORT", "3306")),
            "user": os.getenv("DB_USER"),
            "password": os.getenv("DB_PASSWORD"),
            "database": os.getenv("DB_NAME", os.getenv("DB_DATABASE"))
        }

    def _load_app_config(self):
        """Load application-specific configuration"""
        self.app_config = {
            # Currency
            "REPORTING_CURRENCY": os.getenv("REPORTING_CURRENCY", "GBP").upper(),
            "REFERENCE_CURRENCY": os.getenv("REFERENCE_CURRENCY", "EUR").upper(),

            # Allocation
            "ALLOCATION_MAX_WORKERS": int(os.getenv("ALLOCATION_MAX_WORKERS", "1")),
            "QUANTITY_TOLERANCE": float(os.getenv("QUANTITY_TOLERANCE", "1e-9")),

            # Performance
            "DB_POOL_SIZE": int(os.getenv("DB_POOL_SIZE", "5")),
            "DB_POOL_RECYCLE": int(os.getenv("DB_POOL_RECYCLE", "3600")),

            # Logging
            "LOG_LEVEL": os.getenv("LOG_LEVEL", "INFO").upper(),
        }

    def _log_config_status(self):
        """Log configuration status for debugging"""
        logger.debug("─" * 55)
        logger.debug("📊 DATABASE CONFIGURATION")

        if self.database_url:
            logger.debug("   ✅ DATABASE_URL: configured")
        elif self.has_db_config():
            logger.debug(f"   ✅ Host: {self.db_config['host']}:{self.db_config['port']}")
            logger.debug(f"   ✅ Database: {self.db_config['database']}")
            logger.debug(f"   ✅ User: {self.db_config['user']}")
        else:
            logger.debug("   ℹ️  Database: Not configured (in-memory runs only)")

        logger.debug("─" * 55)
        logger.debug("💱 ALLOCATION SETTINGS")
        logger.debug(f"   Reporting currency: {self.app_config['REPORTING_CURRENCY']}")
        logger.debug(f"   Reference currency: {self.app_config['REFERENCE_CURRENCY']}")
        logger.debug(f"   Max workers: {self.app_config['ALLOCATION_MAX_WORKERS']}")
        logger.debug("─" * 55)

    def has_db_config(self) -> bool:
        """Check whether enough settings exist to build a database URL"""
        if self.database_url:
            return True
        return all([self.db_config["host"], self.db_config["user"],
                    self.db_config["password"], self.db_config["database"]])

    def get_db_config(self) -> Dict[str, Any]:
        """Get database configuration"""
        return self.db_config.copy()

    def get_database_url(self) -> str:
        """Build the SQLAlchemy database URL"""
        if self.database_url:
            return self.database_url

        if not self.has_db_config():
            missing = [key for key in ("host", "user", "password", "database")
                       if not self.db_config.get(key)]
            raise ValueError(
                f"Missing required database configuration: {', '.join(missing)}. "
                f"Please check .env file."
            )

        db = self.db_config
        return (
            f"{db['driver']}://{db['user']}:{db['password']}"
            f"@{db['host']}:{db['port']}/{db['database']}"
        )

    def get_app_setting(self, key: str, default: Any = None) -> Any:
        """Get application setting"""
        return self.app_config.get(key, default)


# Create singleton instance
config = Config()

# Export all
__all__ = [
    'config',
    'Config',
]
