from __future__ import annotations

import logging
from datetime import datetime, time, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from extensions import db
from models import NotificationLog
from utils.timezone_helpers import parse_date, utc_now

logger = logging.getLogger(__name__)


def create_log(data: Dict[str, Any]) -> Optional[NotificationLog]:
    """Persist one notification attempt.

    Logging must never break a send flow: store errors are logged and
    swallowed, and None is returned.
    """
    log = NotificationLog(
        student_id=data.get("student_id"),
        student_name=data.get("student_name"),
        phone_number=data.get("phone_number"),
        message=data.get("message"),
        status=data.get("status") or "sent",
        type=data.get("type") or "sms",
        message_id=data.get("message_id"),
        provider=data.get("provider") or "fast2sms",
        template_name=data.get("template_name"),
        meta=data.get("metadata") or {},
        response_data=data.get("response_data") or {},
    )
    if data.get("id"):
        log.id = data["id"]
    if data.get("created_at"):
        log.created_at = data["created_at"]
    try:
        db.session.add(log)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Error creating notification log")
        return None
    return log


def find_all() -> List[NotificationLog]:
    return NotificationLog.query.order_by(NotificationLog.created_at.desc()).all()


def get_by_student_id(student_id: str) -> List[NotificationLog]:
    return (
        NotificationLog.query.filter_by(student_id=student_id)
        .order_by(NotificationLog.created_at.desc())
        .all()
    )


def get_by_date_range(start: Any, end: Any = None) -> List[NotificationLog]:
    """Logs created between two calendar dates, both inclusive.

    ``end`` defaults to today.
    """
    start_d = parse_date(start)
    if start_d is None:
        raise ValueError(f"Invalid start date: {start}")
    end_d = parse_date(end) if end else utc_now().date()
    if end_d is None:
        raise ValueError(f"Invalid end date: {end}")
    return (
        NotificationLog.query.filter(
            NotificationLog.created_at >= datetime.combine(start_d, time.min),
            NotificationLog.created_at < datetime.combine(end_d + timedelta(days=1), time.min),
        )
        .order_by(NotificationLog.created_at.desc())
        .all()
    )


def count_since(since: datetime) -> int:
    return NotificationLog.query.filter(NotificationLog.created_at >= since).count()
