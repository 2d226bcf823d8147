from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request

from utils import admin_required
from utils import notification_logs
from utils import students as student_store
from utils.dispatch import FixedIntervalTicker
from utils.reminders import StudentRecord, dispatch, group_by_phone
from utils.sms import get_sender
from utils.students import StudentDataError

notification_bp = Blueprint('notifications', __name__, url_prefix='/api/notifications')


@notification_bp.route('/test', methods=['POST'])
@admin_required
def test_sms():
    data = request.get_json(silent=True) or {}
    phone = (data.get('phone_number') or data.get('phoneNumber') or '').strip()
    message = (data.get('message') or '').strip()
    if not phone or not message:
        return jsonify({"ok": False, "error": "Phone number and message are required"}), 400
    result = get_sender().send(phone, message, {"message_type": "test", "source": "api_test"})
    notification_logs.create_log({
        "phone_number": phone,
        "message": message,
        "status": "sent" if result.success else "failed",
        "type": "test",
        "message_id": result.provider_message_id,
        "response_data": result.to_dict(),
    })
    return jsonify({"ok": result.success, "message": "Test SMS notification processed", "result": result.to_dict()})


@notification_bp.route('/broadcast', methods=['POST'])
@admin_required
def broadcast():
    """Same message to every student (or one course), once per phone number."""
    data = request.get_json(silent=True) or {}
    message = (data.get('message') or '').strip()
    course = (data.get('course_filter') or data.get('courseFilter') or '').strip()
    if not message:
        return jsonify({"ok": False, "error": "Message is required"}), 400
    try:
        students = student_store.find_by_course(course) if course else student_store.find_all()
    except StudentDataError as e:
        return jsonify({"ok": False, "error": str(e)}), 500
    if not students:
        return jsonify({"ok": False, "error": "No students found"}), 404

    grouping = group_by_phone(StudentRecord.from_model(s) for s in students)
    if not grouping.groups:
        return jsonify({"ok": False, "error": "No students with valid phone numbers found"}), 400

    current_app.logger.info("Broadcasting SMS to %d phone numbers", len(grouping.groups))
    ticker = FixedIntervalTicker(current_app.config.get('REMINDER_SEND_INTERVAL_SECONDS', 0.5))

    def compose(phone, group):
        return message, {"student_id": group[0].id, "message_type": "broadcast"}

    details = []
    for delivery in dispatch(grouping.groups, get_sender(), compose, ticker):
        rep = delivery.representative
        notification_logs.create_log({
            "student_id": rep.id,
            "student_name": rep.name,
            "phone_number": delivery.phone,
            "message": message,
            "status": "sent" if delivery.ok else "failed",
            "type": "broadcast",
            "message_id": delivery.result.provider_message_id if delivery.result is not None else None,
            "metadata": {"course_filter": course or None, "related_students": [s.id for s in delivery.group[1:]]},
            "response_data": delivery.response_data(),
        })
        details.append({"phone_number": delivery.phone, "student_id": rep.id, "success": delivery.ok,
                        "error": delivery.error})

    successful = sum(1 for d in details if d["success"])
    return jsonify({
        "ok": True,
        "message": "Broadcast SMS sent",
        "summary": {
            "total": len(details),
            "successful": successful,
            "failed": len(details) - successful,
            "skipped": len(grouping.skipped),
            "details": details,
        },
    })


@notification_bp.route('/status', methods=['GET'])
@admin_required
def sms_status():
    cfg = current_app.config
    return jsonify({
        "ok": True,
        "sms_enabled": bool(cfg.get('SMS_ENABLED')),
        "api_key_configured": bool(cfg.get('FAST2SMS_API_KEY')),
        "provider": "fast2sms",
        "brand": cfg.get('SMS_BRAND'),
        "institute_name": cfg.get('INSTITUTE_NAME') or "Not Set",
        "support_phone": "Configured" if cfg.get('SUPPORT_PHONE') else "Not Set",
    })


@notification_bp.route('/balance', methods=['GET'])
@admin_required
def wallet_balance():
    sender = get_sender()
    check = getattr(sender, 'check_wallet_balance', None)
    if check is None:
        return jsonify({"ok": False, "error": "Balance lookup not supported by this sender"}), 501
    balance = check()
    return jsonify({"ok": bool(balance.get("success")), **balance}), (200 if balance.get("success") else 502)


@notification_bp.route('/logs', methods=['GET'])
@admin_required
def all_logs():
    logs = notification_logs.find_all()
    return jsonify({"ok": True, "count": len(logs), "logs": [log.to_dict() for log in logs]})
