import logging
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler

from nashra.services.alert_service import AlertEvaluator
from nashra.services.exceptions import RefreshInProgressError
from nashra.services.runner import RefreshRunner

logger = logging.getLogger(__name__)


class RefreshScheduler:
    """Fixed-cadence refresh and alert jobs.

    Scheduled runs only log their outcome: nobody is waiting on them. With
    ``news_minutes`` set, news ingestion moves to its own job and the refresh
    job covers prices and indices only.
    """

    def __init__(self, runner: RefreshRunner, alert_evaluator: AlertEvaluator,
                 refresh_minutes: int = 5, alert_minutes: int = 1,
                 news_minutes: Optional[int] = None, scheduler=None):
        self.runner = runner
        self.alert_evaluator = alert_evaluator
        self.refresh_minutes = refresh_minutes
        self.alert_minutes = alert_minutes
        self.news_minutes = news_minutes
        self.scheduler = scheduler or BackgroundScheduler(timezone="UTC")

    def _run(self, trigger: str, stages=None):
        try:
            result = self.runner.run(trigger=trigger, stages=stages)
        except RefreshInProgressError:
            logger.info("Refresh already running, skipping %s run", trigger)
            return
        except Exception as e:
            logger.exception("%s refresh failed: %s", trigger, e)
            return
        if result.success:
            logger.info("%s refresh finished: %s", trigger, result.as_dict())
        else:
            logger.warning("%s refresh finished with errors: %s", trigger, result.errors)

    def refresh_job(self):
        stages = ("stocks", "indices") if self.news_minutes else None
        self._run("scheduled", stages)

    def news_job(self):
        self._run("scheduled-news", ("news",))

    def alerts_job(self):
        try:
            result = self.alert_evaluator.evaluate("price")
        except Exception as e:
            logger.exception("Price alert evaluation failed: %s", e)
            return
        if result.errors:
            logger.warning("Price alert evaluation finished with errors: %s", result.errors)

    def start(self):
        job_defaults = {"max_instances": 1, "coalesce": True}
        self.scheduler.add_job(self.refresh_job, "interval", minutes=self.refresh_minutes,
                               id="data-refresh", replace_existing=True, **job_defaults)
        if self.news_minutes:
            self.scheduler.add_job(self.news_job, "interval", minutes=self.news_minutes,
                                   id="news-sync", replace_existing=True, **job_defaults)
        self.scheduler.add_job(self.alerts_job, "interval", minutes=self.alert_minutes,
                               id="price-alerts", replace_existing=True, **job_defaults)
        self.scheduler.start()
        logger.info("Scheduled jobs initialized (refresh every %d min, news every %s min, alerts every %d min)",
                    self.refresh_minutes, self.news_minutes or self.refresh_minutes, self.alert_minutes)

    def shutdown(self, wait: bool = False):
        if self.scheduler.running:
            self.scheduler.shutdown(wait=wait)
            logger.info("Scheduler stopped")
