import uuid
from decimal import Decimal

from extensions import db
from utils.timezone_helpers import isoformat_or_none, utc_now

FEE_PENDING = "pending"
FEE_PAID = "paid"
FEE_OVERDUE = "overdue"
FEE_STATUSES = (FEE_PENDING, FEE_PAID, FEE_OVERDUE)

LOG_SENT = "sent"


def _new_id() -> str:
    return str(uuid.uuid4())


def _amount(value):
    if value is None:
        return None
    return float(value) if isinstance(value, Decimal) else value


class Student(db.Model):
    __tablename__ = 'students'

    id = db.Column(db.String(36), primary_key=True, default=_new_id)
    name = db.Column(db.String(120), nullable=False)
    fathers_name = db.Column(db.String(120))
    registration_no = db.Column(db.String(50), unique=True, nullable=True)
    phone_no = db.Column(db.String(20))
    course_name = db.Column(db.String(100), index=True)
    batch_time = db.Column(db.String(50))
    course_duration = db.Column(db.Integer, default=6)
    created_at = db.Column(db.DateTime, default=utc_now)
    updated_at = db.Column(db.DateTime, default=utc_now, onupdate=utc_now)

    # Fee record, one per student
    monthly_amount = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    fee_status = db.Column(db.String(20), nullable=False, default=FEE_PENDING, index=True)
    due_date = db.Column(db.Date)
    last_paid = db.Column(db.DateTime)

    def fee_dict(self):
        return {
            'monthly_amount': _amount(self.monthly_amount),
            'status': self.fee_status,
            'due_date': isoformat_or_none(self.due_date),
            'last_paid': isoformat_or_none(self.last_paid),
        }

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'fathers_name': self.fathers_name,
            'registration_no': self.registration_no,
            'phone_no': self.phone_no,
            'course_name': self.course_name,
            'batch_time': self.batch_time,
            'course_duration': self.course_duration,
            'created_at': isoformat_or_none(self.created_at),
            'updated_at': isoformat_or_none(self.updated_at),
            'fees': self.fee_dict(),
        }

    def __repr__(self):
        return f'<Student {self.name} ({self.registration_no})>'


class NotificationLog(db.Model):
    __tablename__ = 'notification_logs'

    id = db.Column(db.String(36), primary_key=True, default=_new_id)
    student_id = db.Column(db.String(36), index=True)
    student_name = db.Column(db.String(120))
    phone_number = db.Column(db.String(20))
    message = db.Column(db.Text)
    status = db.Column(db.String(20), nullable=False, default=LOG_SENT)
    type = db.Column(db.String(50), default='sms')
    message_id = db.Column(db.String(100))
    provider = db.Column(db.String(50), default='fast2sms')
    template_name = db.Column(db.String(100))
    created_at = db.Column(db.DateTime, default=utc_now, index=True)
    # 'metadata' is reserved on declarative models
    meta = db.Column('metadata', db.JSON, default=dict)
    response_data = db.Column(db.JSON, default=dict)

    def to_dict(self):
        return {
            'id': self.id,
            'student_id': self.student_id,
            'student_name': self.student_name,
            'phone_number': self.phone_number,
            'message': self.message,
            'status': self.status,
            'type': self.type,
            'message_id': self.message_id,
            'provider': self.provider,
            'template_name': self.template_name,
            'created_at': isoformat_or_none(self.created_at),
            'metadata': self.meta or {},
            'response_data': self.response_data or {},
        }

    def __repr__(self):
        return f'<NotificationLog {self.phone_number} {self.status}>'
