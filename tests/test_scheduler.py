from datetime import date
from unittest.mock import patch

from models import NotificationLog
from scheduler import JOB_ID, daily_job, start_scheduler


def test_daily_job_sends_and_logs(app, make_student, sender):
    make_student(phone="9876543210", due=date(2024, 1, 2))
    with patch('scheduler.local_today', return_value=date(2024, 1, 1)):
        summary = daily_job(app)
    assert summary.successful == 1
    assert sender.phones == ["9876543210"]
    with app.app_context():
        log = NotificationLog.query.one()
        assert log.type == "fee_reminder"
        assert log.template_name == "fee_reminder_sms"
        assert log.id == summary.entries[0].id


def test_daily_job_survives_store_failure(app, sender):
    with patch('utils.students.get_students_with_pending_fees', side_effect=RuntimeError("db down")):
        assert daily_job(app) is None
    assert sender.calls == []


def test_scheduler_registers_single_daily_job(app):
    app.config.update(REMINDER_HOUR=6, REMINDER_MINUTE=30)
    with patch('scheduler.BackgroundScheduler.start'):
        scheduler = start_scheduler(app)
    job = scheduler.get_job(JOB_ID)
    assert job is not None
    assert job.max_instances == 1
    assert job.coalesce is True
    assert str(job.trigger.fields[5]) == '6'
    assert str(job.trigger.fields[6]) == '30'
