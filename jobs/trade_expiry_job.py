"""Background expiry reconciliation for P2P trades"""

import logging
from typing import Any, Dict, Optional

from apscheduler.executors.asyncio import AsyncIOExecutor
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from config import Config
from services.trade_expiry_service import TradeExpiryService

logger = logging.getLogger(__name__)

JOB_ID = "p2p_trade_expiry_sweep"


class TradeExpiryScheduler:
    """Runs the expiry reconciliation pass on a fixed interval"""

    def __init__(self, expiry_service: TradeExpiryService, interval_seconds: Optional[int] = None):
        self.expiry_service = expiry_service
        self.interval_seconds = interval_seconds or Config.P2P_EXPIRY_SWEEP_INTERVAL_SECONDS
        self.scheduler = AsyncIOScheduler(
            jobstores={"default": MemoryJobStore()},
            executors={"default": AsyncIOExecutor()},
            job_defaults={
                "coalesce": True,
                "max_instances": 1,
                "misfire_grace_time": 120,
            },
            timezone="UTC",
        )

    def setup_jobs(self) -> None:
        if self.scheduler.get_job(JOB_ID):
            self.scheduler.remove_job(JOB_ID)
            logger.info(f"🧹 Removed existing {JOB_ID} job")

        self.scheduler.add_job(
            self.run_sweep,
            trigger=IntervalTrigger(seconds=self.interval_seconds),
            id=JOB_ID,
            name="P2P Trade Expiry Sweep",
            max_instances=1,
            coalesce=True,
        )
        logger.info(f"⏰ Trade expiry sweep scheduled every {self.interval_seconds}s")

    async def run_sweep(self) -> Dict[str, Any]:
        results = await self.expiry_service.expire_overdue_trades()
        if results["errors"]:
            logger.error(f"❌ EXPIRY_JOB: {len(results['errors'])} error(s): {results['errors']}")
        return results

    def start(self) -> None:
        self.setup_jobs()
        self.scheduler.start()
        logger.info("✅ Trade expiry scheduler started")

    def shutdown(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("🛑 Trade expiry scheduler stopped")
