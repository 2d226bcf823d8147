from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request

from models import FEE_PAID
from utils import admin_required
from utils import students as student_store
from utils.notification_logs import create_log
from utils.notify import fee_reminder_message, payment_confirmation_message
from utils.sms import get_sender
from utils.students import StudentDataError
from utils.timezone_helpers import format_due_date, local_today

fee_bp = Blueprint('fees', __name__, url_prefix='/api/fees')


@fee_bp.route('/due', methods=['GET'])
@admin_required
def due_fees():
    try:
        students = student_store.get_students_with_pending_fees()
    except StudentDataError as e:
        return jsonify({"ok": False, "error": str(e)}), 500
    return jsonify({"ok": True, "count": len(students), "students": [s.to_dict() for s in students]})


def _confirm_payment(student) -> None:
    if not student.phone_no:
        return
    paid_on = format_due_date(local_today(current_app.config.get('REMINDER_TIMEZONE')))
    text = payment_confirmation_message(current_app.config.get('SMS_BRAND', 'AIICT'), student.name,
                                        student.monthly_amount, student.course_name, paid_on)
    try:
        result = get_sender().send(student.phone_no, text, {"student_id": student.id, "message_type": "payment_confirmation"})
    except Exception:
        current_app.logger.exception("Failed to send payment confirmation to %s", student.phone_no)
        return
    create_log({
        "student_id": student.id,
        "student_name": student.name,
        "phone_number": student.phone_no,
        "message": text,
        "status": "sent" if result.success else "failed",
        "type": "payment_confirmation",
        "message_id": result.provider_message_id,
        "response_data": result.to_dict(),
    })


@fee_bp.route('/<student_id>/status', methods=['PUT'])
@admin_required
def update_status(student_id: str):
    data = request.get_json(silent=True) or {}
    status = (data.get('status') or '').strip().lower()
    try:
        student = student_store.find_by_id(student_id)
        if student is None:
            return jsonify({"ok": False, "error": "Student not found"}), 404
        was_paid = student.fee_status == FEE_PAID
        student = student_store.update_fee_status(student, status, data.get('paid_date'))
    except ValueError as e:
        return jsonify({"ok": False, "error": str(e)}), 400
    except StudentDataError as e:
        return jsonify({"ok": False, "error": str(e)}), 500

    if status == FEE_PAID and not was_paid:
        _confirm_payment(student)
    return jsonify({"ok": True, "message": "Fee status updated successfully", "student": student.to_dict()})


@fee_bp.route('/send-reminder/<student_id>', methods=['POST'])
@admin_required
def send_reminder(student_id: str):
    try:
        student = student_store.find_by_id(student_id)
    except StudentDataError as e:
        return jsonify({"ok": False, "error": str(e)}), 500
    if student is None:
        return jsonify({"ok": False, "error": "Student not found"}), 404
    if student.fee_status == FEE_PAID:
        return jsonify({"ok": False, "error": "Fee already paid"}), 400
    if not student.phone_no:
        return jsonify({"ok": False, "error": "Student has no phone number on record"}), 400

    due = format_due_date(student.due_date)
    text = fee_reminder_message(current_app.config.get('SMS_BRAND', 'AIICT'), student.name,
                                student.monthly_amount, student.course_name, student.due_date)
    result = get_sender().send(student.phone_no, text, {"student_id": student.id, "message_type": "manual_fee_reminder"})
    create_log({
        "student_id": student.id,
        "student_name": student.name,
        "phone_number": student.phone_no,
        "message": f"Fee reminder for {student.course_name or 'course'} - Due on {due}",
        "status": "sent" if result.success else "failed",
        "type": "manual_fee_reminder",
        "message_id": result.provider_message_id,
        "template_name": "fee_reminder_sms",
        "metadata": {"amount": float(student.monthly_amount or 0), "course": student.course_name, "due_date": due},
        "response_data": result.to_dict(),
    })
    if not result.success:
        return jsonify({"ok": False, "error": result.error or "Failed to send reminder", "result": result.to_dict()}), 502
    return jsonify({"ok": True, "message": "Reminder sent successfully", "result": result.to_dict()})
