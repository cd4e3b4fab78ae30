"""Scheduler for the grace-period reaper"""
import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from . import database
from .config import settings
from .services import GracePeriodReaper, ReaperReport

logger = logging.getLogger(__name__)


class ReaperScheduler:
    """宽限期清理定时任务调度器"""

    def __init__(self):
        # 关键约束：
        # - max_instances=1：上一轮清理未完成时不并发启动下一轮（reaper 本身没有行级租约）
        # - coalesce=True：如果发生 misfire，则合并为一次执行
        self.scheduler = AsyncIOScheduler(
            job_defaults={"coalesce": True, "max_instances": 1}
        )

    async def run_reaper(self) -> ReaperReport | None:
        """执行一轮清理；异常只记录日志，不影响下一轮调度。"""
        logger.info("[REAPER] Starting scheduled cleanup...")

        async with database.AsyncSessionLocal() as db:
            try:
                return await GracePeriodReaper(db).sweep()
            except Exception as e:
                logger.exception("[REAPER] Scheduled cleanup error: %s", e)
                return None

    def start(self):
        """启动定时任务"""
        if not settings.reaper_enabled:
            logger.info("[SCHEDULER] Reaper disabled (REAPER_ENABLED=false)")
            return

        interval_minutes = int(settings.reaper_interval_minutes or 60)

        if getattr(self.scheduler, "running", False):
            logger.info("[SCHEDULER] Scheduler already running")
            return

        self.scheduler.add_job(
            self.run_reaper,
            trigger=IntervalTrigger(minutes=interval_minutes),
            id='grace_period_reaper',
            name=f'Finalize ended relationships every {interval_minutes} minutes',
            replace_existing=True
        )

        self.scheduler.start()
        logger.info("[SCHEDULER] Scheduler started: reaper every %s minutes", interval_minutes)

    def shutdown(self):
        """关闭定时任务"""
        if not getattr(self.scheduler, "running", False):
            return
        self.scheduler.shutdown(wait=False)
        logger.info("[SCHEDULER] Scheduler stopped")


# 全局调度器实例
scheduler = ReaperScheduler()
