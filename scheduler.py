import logging

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from config import get_settings
from fx_rates import FxRateService, RateTableStore


logger = logging.getLogger(__name__)


class SchedulerManager:
    """Keeps the in-process rate table fresh when a live provider is configured."""

    def __init__(self, store: RateTableStore) -> None:
        settings = get_settings()
        self.settings = settings
        self.store = store
        self.scheduler = BackgroundScheduler(timezone=settings.timezone)

    @property
    def enabled(self) -> bool:
        return (self.settings.fx_provider or "static").lower() != "static"

    def _run_job(self, source: str = "manual") -> bool:
        logger.info(f"fx_refresh: source={source}")
        try:
            table = FxRateService().load(self.store.current.currencies)
        except (RuntimeError, ValueError) as exc:
            logger.warning(f"fx_refresh_failed: source={source} error={exc}")
            return False
        self.store.replace(table)
        return True

    def start(self) -> None:
        if not self.enabled:
            logger.info("Scheduler idle: static rate table in use")
            return

        self._run_job("startup")

        trigger = IntervalTrigger(hours=self.settings.fx_refresh_hours)
        self.scheduler.add_job(
            self._run_job,
            trigger,
            args=["interval"],
            id="fx_refresh",
            replace_existing=True,
            misfire_grace_time=300,
        )

        self.scheduler.start()
        logger.info(
            f"Scheduler started with fx refresh every {self.settings.fx_refresh_hours}h"
        )

    def stop(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")
