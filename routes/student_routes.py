from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request

from utils import admin_required
from utils import students as student_store
from utils.notification_logs import create_log
from utils.notify import welcome_message
from utils.sms import get_sender
from utils.students import StudentDataError

student_bp = Blueprint('students', __name__, url_prefix='/api/students')

# The dashboard posts camelCase field names
_ALIASES = {
    'fathersName': 'fathers_name',
    'registrationNo': 'registration_no',
    'phoneNo': 'phone_no',
    'courseName': 'course_name',
    'batchTime': 'batch_time',
    'courseDuration': 'course_duration',
    'monthlyAmount': 'monthly_amount',
    'dueDate': 'due_date',
    'joiningDate': 'joining_date',
    'feeStatus': 'fee_status',
}


def student_payload(data: dict | None) -> dict:
    out = {}
    for key, value in (data or {}).items():
        out[_ALIASES.get(key, key)] = value
    return out


def _send_welcome(student) -> None:
    if not student.phone_no:
        return
    text = welcome_message(current_app.config.get('SMS_BRAND', 'AIICT'), student.name,
                           student.course_name, student.batch_time)
    try:
        result = get_sender().send(student.phone_no, text, {"student_id": student.id, "message_type": "welcome"})
    except Exception:
        # Enrolment must not fail because the SMS gateway did
        current_app.logger.exception("Failed to send welcome message to %s", student.phone_no)
        return
    create_log({
        "student_id": student.id,
        "student_name": student.name,
        "phone_number": student.phone_no,
        "message": text,
        "status": "sent" if result.success else "failed",
        "type": "welcome",
        "message_id": result.provider_message_id,
        "response_data": result.to_dict(),
    })


@student_bp.route('', methods=['POST'])
@admin_required
def add_student():
    data = student_payload(request.get_json(silent=True))
    current_app.logger.info(
        "Creating student: name=%s course=%s due_date=%s joining_date=%s",
        data.get('name'), data.get('course_name'), data.get('due_date'), data.get('joining_date'),
    )
    try:
        student = student_store.create(data)
    except ValueError as e:
        return jsonify({"ok": False, "error": str(e)}), 400
    except StudentDataError as e:
        return jsonify({"ok": False, "error": str(e)}), 500
    _send_welcome(student)
    return jsonify({"ok": True, "message": "Student added successfully", "student": student.to_dict()}), 201


@student_bp.route('', methods=['GET'])
@admin_required
def list_students():
    try:
        students = student_store.find_all()
    except StudentDataError as e:
        return jsonify({"ok": False, "error": str(e)}), 500
    return jsonify({"ok": True, "count": len(students), "students": [s.to_dict() for s in students]})


@student_bp.route('/<student_id>', methods=['GET'])
@admin_required
def get_student(student_id: str):
    try:
        student = student_store.find_by_id(student_id)
    except StudentDataError as e:
        return jsonify({"ok": False, "error": str(e)}), 500
    if student is None:
        return jsonify({"ok": False, "error": "Student not found"}), 404
    return jsonify({"ok": True, "student": student.to_dict()})


@student_bp.route('/<student_id>', methods=['PUT'])
@admin_required
def update_student(student_id: str):
    data = student_payload(request.get_json(silent=True))
    try:
        student = student_store.find_by_id(student_id)
        if student is None:
            return jsonify({"ok": False, "error": "Student not found"}), 404
        student = student_store.update(student, data)
    except ValueError as e:
        return jsonify({"ok": False, "error": str(e)}), 400
    except StudentDataError as e:
        return jsonify({"ok": False, "error": str(e)}), 500
    return jsonify({"ok": True, "message": "Student updated successfully", "student": student.to_dict()})


@student_bp.route('/<student_id>', methods=['DELETE'])
@admin_required
def delete_student(student_id: str):
    try:
        student = student_store.find_by_id(student_id)
        if student is None:
            return jsonify({"ok": False, "error": "Student not found"}), 404
        student_store.delete(student)
    except StudentDataError as e:
        return jsonify({"ok": False, "error": str(e)}), 500
    return jsonify({"ok": True, "message": "Student deleted successfully"})
