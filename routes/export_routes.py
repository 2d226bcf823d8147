from __future__ import annotations

import csv
import json
from datetime import datetime
from io import BytesIO, StringIO

from flask import Blueprint, Response, jsonify
from openpyxl.styles import Font, PatternFill
from openpyxl.workbook import Workbook

from utils import admin_required
from utils import notification_logs
from utils import students as student_store
from utils.students import StudentDataError

export_bp = Blueprint('export', __name__, url_prefix='/api')

XLSX_MIME = 'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet'

STUDENT_COLUMNS = [
    ('ID', 'id', 38),
    ('Registration No', 'registration_no', 16),
    ('Name', 'name', 25),
    ("Father's Name", 'fathers_name', 25),
    ('Phone', 'phone_no', 15),
    ('Course', 'course_name', 20),
    ('Batch Time', 'batch_time', 15),
    ('Monthly Fee', 'monthly_fee', 14),
    ('Fee Status', 'fee_status', 12),
    ('Due Date', 'due_date', 14),
    ('Last Paid', 'last_paid', 20),
    ('Course Duration (Months)', 'course_duration', 22),
    ('Joining Date', 'created_at', 20),
]

LOG_COLUMNS = [
    ('ID', 'id', 38),
    ('Student ID', 'student_id', 38),
    ('Student Name', 'student_name', 25),
    ('Phone', 'phone_number', 15),
    ('Type', 'type', 20),
    ('Message', 'message', 60),
    ('Status', 'status', 10),
    ('Created At', 'created_at', 22),
]


def student_rows() -> list[dict]:
    rows = []
    for s in student_store.find_all():
        d = s.to_dict()
        fees = d.pop('fees')
        d.update(
            monthly_fee=fees['monthly_amount'],
            fee_status=fees['status'],
            due_date=fees['due_date'],
            last_paid=fees['last_paid'],
        )
        rows.append({key: d.get(key) for _, key, _ in STUDENT_COLUMNS})
    return rows


def log_rows() -> list[dict]:
    return [{key: log.to_dict().get(key) for _, key, _ in LOG_COLUMNS} for log in notification_logs.find_all()]


def _timestamp() -> str:
    return datetime.now().strftime('%Y%m%d_%H%M%S')


def _xlsx(title: str, columns, rows) -> bytes:
    wb = Workbook()
    ws = wb.active
    ws.title = title
    ws.append([header for header, _, _ in columns])
    for row in rows:
        ws.append([row.get(key) for _, key, _ in columns])
    fill = PatternFill(fill_type='solid', fgColor='FFE0E0E0')
    for cell in ws[1]:
        cell.font = Font(bold=True)
        cell.fill = fill
    for idx, (_, _, width) in enumerate(columns, start=1):
        ws.column_dimensions[ws.cell(row=1, column=idx).column_letter].width = width
    mem = BytesIO()
    wb.save(mem)
    return mem.getvalue()


def _csv(columns, rows) -> str:
    out = StringIO()
    writer = csv.writer(out, quoting=csv.QUOTE_ALL)
    writer.writerow([header for header, _, _ in columns])
    for row in rows:
        writer.writerow(['' if row.get(key) is None else row.get(key) for _, key, _ in columns])
    return out.getvalue()


def _attachment(body, mimetype: str, filename: str) -> Response:
    return Response(body, mimetype=mimetype, headers={'Content-Disposition': f'attachment; filename={filename}'})


def _store_error(e: Exception):
    return jsonify({"ok": False, "error": f"Error exporting data: {e}"}), 500


@export_bp.route('/export/students', methods=['GET'])
@admin_required
def export_students_xlsx():
    try:
        rows = student_rows()
    except StudentDataError as e:
        return _store_error(e)
    return _attachment(_xlsx('Students', STUDENT_COLUMNS, rows), XLSX_MIME, f'students_{_timestamp()}.xlsx')


@export_bp.route('/export/notifications', methods=['GET'])
@admin_required
def export_notifications_xlsx():
    rows = log_rows()
    return _attachment(_xlsx('Notification Logs', LOG_COLUMNS, rows), XLSX_MIME,
                       f'notification_logs_{_timestamp()}.xlsx')


@export_bp.route('/export-v2/students/csv', methods=['GET'])
@admin_required
def export_students_csv():
    try:
        rows = student_rows()
    except StudentDataError as e:
        return _store_error(e)
    return _attachment(_csv(STUDENT_COLUMNS, rows), 'text/csv', f'students_{_timestamp()}.csv')


@export_bp.route('/export-v2/students/json', methods=['GET'])
@admin_required
def export_students_json():
    try:
        rows = student_rows()
    except StudentDataError as e:
        return _store_error(e)
    body = json.dumps({"exported_at": datetime.now().isoformat(), "count": len(rows), "students": rows}, indent=2)
    return _attachment(body, 'application/json', f'students_{_timestamp()}.json')


@export_bp.route('/export-v2/notifications/csv', methods=['GET'])
@admin_required
def export_notifications_csv():
    return _attachment(_csv(LOG_COLUMNS, log_rows()), 'text/csv', f'notification_logs_{_timestamp()}.csv')


@export_bp.route('/export-v2/notifications/json', methods=['GET'])
@admin_required
def export_notifications_json():
    rows = log_rows()
    body = json.dumps({"exported_at": datetime.now().isoformat(), "count": len(rows), "logs": rows}, indent=2)
    return _attachment(body, 'application/json', f'notification_logs_{_timestamp()}.json')
