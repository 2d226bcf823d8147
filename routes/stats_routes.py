from __future__ import annotations

from datetime import date, datetime, timedelta

from flask import Blueprint, current_app, jsonify

from models import FEE_OVERDUE, FEE_PAID, FEE_PENDING
from utils import admin_required
from utils import notification_logs
from utils import students as student_store
from utils.students import StudentDataError
from utils.timezone_helpers import local_today, utc_now

stats_bp = Blueprint('stats', __name__, url_prefix='/api/stats')


def compute_stats(students, today: date) -> dict:
    """Dashboard KPIs. Revenue buckets use ``last_paid`` of paid fees."""
    quarter_start_month = ((today.month - 1) // 3) * 3 + 1
    quarter_start = date(today.year, quarter_start_month, 1)
    tomorrow = today + timedelta(days=1)

    stats = {
        "total_students": len(students),
        "pending_fees": 0,
        "total_revenue": 0.0,
        "monthly_revenue": 0.0,
        "quarterly_revenue": 0.0,
        "yearly_revenue": 0.0,
        "due_students_tomorrow": [],
    }
    for s in students:
        amount = float(s.monthly_amount or 0)
        if s.fee_status in (FEE_PENDING, FEE_OVERDUE):
            stats["pending_fees"] += 1
        if s.fee_status == FEE_PAID:
            stats["total_revenue"] += amount
            paid = s.last_paid.date() if isinstance(s.last_paid, datetime) else s.last_paid
            if paid is not None and paid.year == today.year:
                stats["yearly_revenue"] += amount
                if paid >= quarter_start:
                    stats["quarterly_revenue"] += amount
                if paid.month == today.month:
                    stats["monthly_revenue"] += amount
        elif s.due_date == tomorrow:
            stats["due_students_tomorrow"].append(s.to_dict())
    return stats


@stats_bp.route('', methods=['GET'])
@admin_required
def dashboard_stats():
    try:
        students = student_store.find_all()
    except StudentDataError as e:
        current_app.logger.error("Error getting dashboard stats: %s", e)
        return jsonify({"ok": False, "error": "Error getting dashboard statistics"}), 500
    stats = compute_stats(students, local_today(current_app.config.get('REMINDER_TIMEZONE')))
    stats["recent_reminders"] = notification_logs.count_since(utc_now() - timedelta(days=1))
    return jsonify({"ok": True, **stats})
