"""Configuration management for the P2P trade engine"""

import os
import logging
from decimal import Decimal

logger = logging.getLogger(__name__)


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower().strip() in ("1", "true", "yes", "on")


class Config:
    """Application configuration"""

    # Environment detection: ENVIRONMENT takes absolute priority
    ENVIRONMENT = os.getenv("ENVIRONMENT", "development").lower().strip()
    IS_PRODUCTION = ENVIRONMENT == "production"
    CURRENT_ENVIRONMENT = "production" if IS_PRODUCTION else "development"

    # Durable local storage (async SQLAlchemy URL)
    DATABASE_URL = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///p2p_store.db")
    DATABASE_ECHO = _env_bool("DATABASE_ECHO")

    # Persisted collection keys
    P2P_ORDERS_KEY = os.getenv("P2P_ORDERS_KEY", "p2p_orders")
    P2P_TRADES_KEY = os.getenv("P2P_TRADES_KEY", "p2p_trades")

    # Platform fee charged on trade amount (0.001 = 0.1%)
    P2P_PLATFORM_FEE_RATE = Decimal(os.getenv("P2P_PLATFORM_FEE_RATE", "0.001"))

    # Callers re-fetch trade state on this interval to observe counterparty actions
    P2P_TRADE_POLL_INTERVAL_SECONDS = int(os.getenv("P2P_TRADE_POLL_INTERVAL_SECONDS", "3"))

    # Expiry reconciliation (disabled by default, expiresAt is advisory)
    P2P_AUTO_EXPIRE_TRADES = _env_bool("P2P_AUTO_EXPIRE_TRADES")
    P2P_EXPIRY_SWEEP_INTERVAL_SECONDS = int(os.getenv("P2P_EXPIRY_SWEEP_INTERVAL_SECONDS", "60"))

    # Publish the demo order set on startup
    P2P_SEED_SAMPLE_ORDERS = _env_bool("P2P_SEED_SAMPLE_ORDERS", "true")

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

    @staticmethod
    def log_environment_config():
        """Log current environment configuration for debugging"""
        logger.info("🔧 P2P Engine Configuration:")
        logger.info(f"   Environment: {Config.CURRENT_ENVIRONMENT.upper()}")
        logger.info(f"   Database URL: {Config.DATABASE_URL}")
        logger.info(f"   Collections: {Config.P2P_ORDERS_KEY}, {Config.P2P_TRADES_KEY}")
        logger.info(f"   Platform fee rate: {Config.P2P_PLATFORM_FEE_RATE}")
        logger.info(f"   Auto-expire trades: {Config.P2P_AUTO_EXPIRE_TRADES}")
        if Config.P2P_AUTO_EXPIRE_TRADES:
            logger.info(f"   Expiry sweep interval: {Config.P2P_EXPIRY_SWEEP_INTERVAL_SECONDS}s")
        logger.info(f"   Seed sample orders: {Config.P2P_SEED_SAMPLE_ORDERS}")
