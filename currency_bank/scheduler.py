"""
Interest Scheduler Module

Turns every interest rule file into a recurring background job on a shared
worker pool.

By default the cron expression only decides the first fire; the job then
repeats on a fixed period (one day). With recurring_cron enabled, every fire
time is computed from the expression instead.

Rule files are re-read on every fire, so edits to rules apply on the next
tick without a restart.
"""

from datetime import datetime, timedelta, timezone, tzinfo
from pathlib import Path
from typing import List, Optional, Union

from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.base import BaseTrigger
from apscheduler.triggers.interval import IntervalTrigger

from .cron import DEFAULT_FALLBACK_DELAY, local_time, next_delay, next_fire_time, validate_schedule
from .errors import RuleUnitError
from .interest import InterestEngine, InterestRunResult
from .logging_config import get_logger
from .rules import discover_rule_files, load_rule_unit


DISCOVERY_JOB_ID = "interest:discovery"
DEFAULT_PERIOD = timedelta(days=1)


class UnixCronTrigger(BaseTrigger):
    """APScheduler trigger that fires on every match of a UNIX cron expression"""

    def __init__(self, expression: str, fallback: timedelta = DEFAULT_FALLBACK_DELAY):
        validate_schedule(expression)
        self.expression = expression
        self.fallback = fallback

    def get_next_fire_time(self, previous_fire_time, now):
        reference = max(now, previous_fire_time) if previous_fire_time else now
        fire_time = next_fire_time(self.expression, reference)
        if fire_time is None:
            return reference.astimezone(timezone.utc) + self.fallback
        return fire_time

    def __str__(self):
        return f"unix-cron[{self.expression}]"


def job_id_for(path: Union[str, Path]) -> str:
    return f"interest:{Path(path)}"


class InterestScheduler:
    """
    Discovers rule files and keeps one repeating interest job per file
    """

    def __init__(
        self,
        engine: InterestEngine,
        config_dir: Union[str, Path],
        period: timedelta = DEFAULT_PERIOD,
        fallback_delay: timedelta = DEFAULT_FALLBACK_DELAY,
        recurring_cron: bool = False,
        max_workers: int = 4,
        timezone: Optional[tzinfo] = None,
        scheduler: Optional[BackgroundScheduler] = None
    ):
        self.engine = engine
        self.config_dir = Path(config_dir)
        self.period = period
        self.fallback_delay = fallback_delay
        self.recurring_cron = recurring_cron
        self.timezone = timezone
        self.logger = get_logger("currency_bank.scheduler")

        if scheduler is None:
            options = {
                "executors": {"default": ThreadPoolExecutor(max_workers)},
                "job_defaults": {"coalesce": True, "max_instances": 1, "misfire_grace_time": None}
            }
            if timezone is not None:
                options["timezone"] = timezone
            scheduler = BackgroundScheduler(**options)
        self.scheduler = scheduler

    @property
    def running(self) -> bool:
        return self.scheduler.running

    def start(self) -> None:
        """Start the worker pool and queue discovery as a one-shot job"""
        self.scheduler.start()
        self.scheduler.add_job(
            self.load_and_schedule_all,
            id=DISCOVERY_JOB_ID,
            name="Discover interest rule files",
            replace_existing=True
        )
        self.logger.info(f"Interest scheduler started for {self.config_dir}")

    def shutdown(self, wait: bool = True) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=wait)
            self.logger.info("Interest scheduler stopped")

    def load_and_schedule_all(self) -> List[str]:
        """
        Discover every rule file and schedule a job for each

        Returns:
            IDs of the jobs that were scheduled
        """
        files = discover_rule_files(self.config_dir)
        if not files:
            self.logger.info(f"No interest rule files found in {self.config_dir}")
            return []

        job_ids = []
        for path in files:
            job_id = self.schedule_unit(path)
            if job_id:
                job_ids.append(job_id)
        return job_ids

    def schedule_unit(self, path: Union[str, Path], now: Optional[datetime] = None) -> Optional[str]:
        """
        Schedule the repeating job for one rule file

        A file that cannot be parsed is logged and skipped.

        Returns:
            The job ID, or None if the file was skipped
        """
        path = Path(path)
        now = local_time(now) if now else self._now()
        try:
            unit = load_rule_unit(path)
            if self.recurring_cron:
                trigger = UnixCronTrigger(unit.schedule, self.fallback_delay)
            else:
                delay = next_delay(unit.schedule, now, self.fallback_delay)
                first_fire = now.astimezone(timezone.utc) + delay
                trigger = IntervalTrigger(
                    seconds=int(self.period.total_seconds()), start_date=first_fire
                )
        except RuleUnitError as e:
            self.logger.warning(f"Failed to parse interest file: {path.name} - {e}")
            return None

        job = self.scheduler.add_job(
            self.run_unit,
            trigger=trigger,
            args=[str(path)],
            id=job_id_for(path),
            name=f"Interest: {path.name}",
            replace_existing=True
        )
        self.logger.info(f"Scheduled interest for {path.name} ({trigger})")
        return job.id

    def run_unit(self, path: Union[str, Path]) -> InterestRunResult:
        """
        One fire of a rule file's job: re-read the file and apply it

        Read or parse failures are logged and the tick is skipped.
        """
        path = Path(path)
        try:
            unit = load_rule_unit(path)
        except RuleUnitError as e:
            self.logger.warning(f"Failed to run interest task for: {path.name} - {e}")
            return InterestRunResult(unit=path.name, errors=[str(e)])

        return self.engine.apply_unit(unit)

    def _now(self) -> datetime:
        if self.timezone is not None:
            return datetime.now(self.timezone)
        return local_time()
