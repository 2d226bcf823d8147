import logging

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from flask import current_app

from utils import students as student_store
from utils.dispatch import FixedIntervalTicker
from utils.notification_logs import create_log
from utils.reminders import NotificationLogEntry, ReminderRunError, ReminderSummary, run_reminders
from utils.sms import get_sender
from utils.timezone_helpers import local_today

logger = logging.getLogger(__name__)

JOB_ID = 'daily_fee_reminder'


def write_reminder_log(entry: NotificationLogEntry) -> None:
    data = entry.to_dict()
    data['created_at'] = entry.created_at
    create_log(data)


def run_configured_reminders(due_in_days=None, course_name=None) -> ReminderSummary:
    """Run the reminder pipeline with the current app's sender and settings.

    Needs an app context. Raises ReminderRunError when the student snapshot
    cannot be read.
    """
    cfg = current_app.config
    ticker = FixedIntervalTicker(cfg.get('REMINDER_SEND_INTERVAL_SECONDS', 0.5))
    return run_reminders(
        student_store.get_students_with_pending_fees,
        get_sender(),
        today=local_today(cfg.get('REMINDER_TIMEZONE')),
        log_writer=write_reminder_log,
        ticker=ticker,
        brand=cfg.get('SMS_BRAND', 'AIICT'),
        due_in_days=due_in_days,
        course_name=course_name,
    )


def daily_job(app):
    with app.app_context():
        logger.info("Running scheduled fee reminder check...")
        try:
            summary = run_configured_reminders()
        except ReminderRunError:
            logger.exception("Scheduled fee reminder run aborted")
            return None
        logger.info("Scheduled fee check completed: %d sent, %d failed", summary.successful, summary.failed)
        return summary


def start_scheduler(app):
    tz = app.config.get('REMINDER_TIMEZONE', 'Asia/Kolkata')
    scheduler = BackgroundScheduler(timezone=tz)
    scheduler.add_job(
        daily_job,
        CronTrigger(hour=app.config.get('REMINDER_HOUR', 7), minute=app.config.get('REMINDER_MINUTE', 0), timezone=tz),
        args=[app],
        id=JOB_ID,
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    scheduler.start()
    return scheduler
