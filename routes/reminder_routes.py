from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request

from scheduler import run_configured_reminders
from utils import admin_required
from utils import notification_logs
from utils.reminders import ReminderRunError

reminder_bp = Blueprint('reminders', __name__, url_prefix='/api/reminders')

MAX_DUE_IN_DAYS = 3650


@reminder_bp.route('/send-batch', methods=['POST'])
@admin_required
def send_batch():
    """Run the same reminder pass the daily scheduler runs."""
    current_app.logger.info("Manually triggering batch fee reminders")
    try:
        summary = run_configured_reminders()
    except ReminderRunError as e:
        current_app.logger.error("Batch reminders aborted: %s", e)
        return jsonify({"ok": False, "error": str(e)}), 500
    return jsonify({"ok": True, "message": "Batch reminders completed", "result": summary.to_dict()})


@reminder_bp.route('/filter', methods=['POST'])
@admin_required
def send_filtered():
    """Reminders for a subset of unpaid students.

    Body: ``{"due_in_days": 3, "course_name": "Tally"}`` (at least one).
    ``due_in_days`` selects an exact due date, ``course_name`` matches
    case-insensitively.
    """
    data = request.get_json(silent=True) or {}
    raw_days = data.get('due_in_days', data.get('dueInDays'))
    course_name = (data.get('course_name') or data.get('courseName') or '').strip() or None
    due_in_days = None
    if raw_days not in (None, ''):
        try:
            due_in_days = int(raw_days)
        except (TypeError, ValueError):
            return jsonify({"ok": False, "error": "due_in_days must be an integer"}), 400
        if abs(due_in_days) > MAX_DUE_IN_DAYS:
            return jsonify({"ok": False, "error": "due_in_days out of range"}), 400
    if due_in_days is None and not course_name:
        return jsonify({"ok": False, "error": "Filter criteria required (due_in_days or course_name)"}), 400

    try:
        summary = run_configured_reminders(due_in_days=due_in_days, course_name=course_name)
    except ReminderRunError as e:
        return jsonify({"ok": False, "error": str(e)}), 500
    return jsonify({"ok": True, "message": "Filtered reminders sent", "result": summary.to_dict()})


@reminder_bp.route('/notification-history', methods=['GET'])
@admin_required
def notification_history():
    student_id = (request.args.get('student_id') or request.args.get('studentId') or '').strip()
    start_date = request.args.get('start_date') or request.args.get('startDate')
    end_date = request.args.get('end_date') or request.args.get('endDate')
    if student_id:
        logs = notification_logs.get_by_student_id(student_id)
    elif start_date:
        try:
            logs = notification_logs.get_by_date_range(start_date, end_date)
        except ValueError as e:
            return jsonify({"ok": False, "error": str(e)}), 400
    else:
        return jsonify({"ok": False, "error": "Filter criteria required (student_id or start_date)"}), 400
    return jsonify({"ok": True, "count": len(logs), "logs": [log.to_dict() for log in logs]})
