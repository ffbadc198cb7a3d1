#!/usr/bin/env python3
"""
P2P Engine Startup

Deterministic startup sequence:
- Open the durable key/value store and load both collections
- Publish the demo order set when enabled
- Start the expiry reconciliation job when enabled
"""

import asyncio
import logging
from typing import Optional

from config import Config
from jobs.trade_expiry_job import TradeExpiryScheduler
from services.p2p_service import P2PService

logging.basicConfig(
    level=getattr(logging, Config.LOG_LEVEL, logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


class StartupManager:
    """Explicit startup and shutdown of the engine and its background job"""

    def __init__(self):
        self.service: Optional[P2PService] = None
        self.expiry_scheduler: Optional[TradeExpiryScheduler] = None

    async def initialize(self) -> P2PService:
        Config.log_environment_config()

        logger.info("🗄️ Opening P2P store...")
        self.service = await P2PService.open(Config.DATABASE_URL)

        if Config.P2P_SEED_SAMPLE_ORDERS:
            await self.service.engine.order_book.seed_sample_orders()

        if Config.P2P_AUTO_EXPIRE_TRADES:
            self.expiry_scheduler = TradeExpiryScheduler(self.service.engine.expiry)
            self.expiry_scheduler.start()

        user = self.service.get_current_user()
        logger.info(
            f"✅ P2P engine ready for {user.username}: "
            f"{len(self.service.list_orders())} open order(s), "
            f"{len(self.service.list_my_trades())} trade(s)"
        )
        return self.service

    async def shutdown(self) -> None:
        if self.expiry_scheduler is not None:
            self.expiry_scheduler.shutdown()
        if self.service is not None:
            await self.service.close()
        logger.info("👋 P2P engine stopped")


async def run() -> None:
    manager = StartupManager()
    await manager.initialize()
    try:
        await asyncio.Event().wait()
    finally:
        await manager.shutdown()


def main() -> int:
    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        logger.info("Interrupted")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
