from __future__ import annotations

from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from extensions import db
from models import FEE_PAID, FEE_PENDING, FEE_STATUSES, Student
from utils.timezone_helpers import parse_date, parse_datetime, utc_now

DEFAULT_COURSE_DURATION = 6
DEFAULT_DUE_IN_DAYS = 30


class StudentDataError(Exception):
    """The student store could not be read or written."""


class DuplicateRegistrationError(ValueError):
    pass


def _amount(value: Any) -> Decimal:
    if value is None or value == "":
        return Decimal("0")
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise ValueError(f"Invalid amount: {value}") from e
    if amount < 0:
        raise ValueError("Amount cannot be negative")
    return amount


def _commit() -> None:
    try:
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        raise StudentDataError(f"Error saving student: {e}") from e


def _query(stmt_fn, what: str):
    try:
        return stmt_fn()
    except SQLAlchemyError as e:
        db.session.rollback()
        raise StudentDataError(f"Error {what}: {e}") from e


def default_due_date(joining_date: Any = None):
    joined = parse_date(joining_date)
    if joined is not None:
        return joined + timedelta(days=DEFAULT_DUE_IN_DAYS)
    return (utc_now() + timedelta(days=DEFAULT_DUE_IN_DAYS)).date()


def find_all() -> List[Student]:
    return _query(lambda: Student.query.order_by(Student.created_at, Student.id).all(), "retrieving students")


def find_by_id(student_id: str) -> Optional[Student]:
    return _query(lambda: db.session.get(Student, student_id), "retrieving student")


def find_by_registration_no(reg_no: str | None) -> Optional[Student]:
    if not reg_no or not reg_no.strip():
        return None
    return _query(lambda: Student.query.filter_by(registration_no=reg_no.strip()).first(),
                  "querying by registration")


def find_by_course(course_name: str) -> List[Student]:
    name = (course_name or "").strip().lower()
    return _query(
        lambda: Student.query.filter(func.lower(Student.course_name) == name)
        .order_by(Student.created_at, Student.id).all(),
        "querying by course",
    )


def get_students_with_pending_fees() -> List[Student]:
    """Every student whose fee is not marked paid (pending or overdue)."""
    return _query(
        lambda: Student.query.filter(Student.fee_status != FEE_PAID)
        .order_by(Student.created_at, Student.id).all(),
        "getting due fees",
    )


def create(data: Dict[str, Any]) -> Student:
    name = (data.get("name") or "").strip()
    if not name:
        raise ValueError("Name is required")
    reg_no = (data.get("registration_no") or "").strip() or None
    if reg_no and find_by_registration_no(reg_no):
        raise DuplicateRegistrationError("Registration number already exists")

    if data.get("due_date"):
        due = parse_date(data["due_date"])
        if due is None:
            raise ValueError(f"Invalid due date: {data['due_date']}")
    else:
        due = default_due_date(data.get("joining_date"))
    student = Student(
        name=name,
        fathers_name=data.get("fathers_name"),
        registration_no=reg_no,
        phone_no=(str(data["phone_no"]).strip() if data.get("phone_no") else None),
        course_name=data.get("course_name"),
        batch_time=data.get("batch_time"),
        course_duration=int(data.get("course_duration") or DEFAULT_COURSE_DURATION),
        monthly_amount=_amount(data.get("monthly_amount")),
        fee_status=FEE_PENDING,
        due_date=due,
    )
    db.session.add(student)
    _commit()
    return student


_PROFILE_FIELDS = ("name", "fathers_name", "phone_no", "course_name", "batch_time")


def update(student: Student, data: Dict[str, Any]) -> Student:
    """Partial update: only keys present with a non-empty value change."""
    for key in _PROFILE_FIELDS:
        if data.get(key):
            setattr(student, key, str(data[key]).strip())
    reg_no = (data.get("registration_no") or "").strip()
    if reg_no and reg_no != student.registration_no:
        other = find_by_registration_no(reg_no)
        if other is not None and other.id != student.id:
            raise DuplicateRegistrationError("Registration number already exists")
        student.registration_no = reg_no
    if data.get("course_duration") is not None:
        student.course_duration = int(data["course_duration"])
    if data.get("monthly_amount") not in (None, ""):
        student.monthly_amount = _amount(data["monthly_amount"])
    if data.get("due_date"):
        due = parse_date(data["due_date"])
        if due is None:
            raise ValueError(f"Invalid due date: {data['due_date']}")
        student.due_date = due
    if data.get("fee_status"):
        _apply_status(student, data["fee_status"])
    _commit()
    return student


def _apply_status(student: Student, status: str, paid_at: datetime | None = None) -> None:
    status = (status or "").strip().lower()
    if status not in FEE_STATUSES:
        raise ValueError(f"Invalid fee status: {status or '(empty)'}")
    student.fee_status = status
    if status == FEE_PAID:
        student.last_paid = paid_at or student.last_paid or utc_now()


def update_fee_status(student: Student, status: str, paid_date: Any = None) -> Student:
    paid_at = parse_datetime(paid_date) if paid_date else None
    if (status or "").strip().lower() == FEE_PAID and paid_at is None:
        paid_at = utc_now()
    _apply_status(student, status, paid_at)
    _commit()
    return student


def delete(student: Student) -> None:
    db.session.delete(student)
    _commit()
