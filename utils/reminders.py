"""
Due-fee reminder batching.

A run takes a snapshot of students with unpaid fees, picks the ones that
need a reminder today, sends one SMS per unique phone number and records
one log entry per attempt:

    records -> select_due_students -> group_by_phone -> send_reminders

Windows (calendar dates, time of day ignored):

- ``due_tomorrow``       due_date == today + 1
- ``due_in_three_days``  due_date == today + 3
- ``overdue``            due_date <  today

Candidates are concatenated in that order, so when students sharing a phone
fall into different windows the due-tomorrow one represents the group.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from utils.dispatch import FixedIntervalTicker
from utils.notify import fee_reminder_message, normalize_phone
from utils.sms import NotificationSender, SendResult
from utils.timezone_helpers import format_due_date, utc_now

logger = logging.getLogger(__name__)

DUE_TOMORROW = "due_tomorrow"
DUE_IN_THREE_DAYS = "due_in_three_days"
OVERDUE = "overdue"
WINDOW_ORDER = (DUE_TOMORROW, DUE_IN_THREE_DAYS, OVERDUE)
WINDOW_OFFSETS = {DUE_TOMORROW: 1, DUE_IN_THREE_DAYS: 3}

PAID = "paid"
DEFAULT_SEND_INTERVAL = 0.5
TEMPLATE_NAME = "fee_reminder_sms"


class ReminderRunError(Exception):
    """The student snapshot could not be read; nothing was sent."""


@dataclass(frozen=True)
class FeeRecord:
    monthly_amount: Decimal = Decimal("0")
    status: str = "pending"
    due_date: Optional[date] = None
    last_paid: Optional[datetime] = None


@dataclass(frozen=True)
class StudentRecord:
    id: str
    name: str
    phone_number: Optional[str]
    course_name: Optional[str]
    fee: FeeRecord = field(default_factory=FeeRecord)

    @classmethod
    def from_model(cls, student) -> "StudentRecord":
        return cls(
            id=student.id,
            name=student.name,
            phone_number=student.phone_no,
            course_name=student.course_name,
            fee=FeeRecord(
                monthly_amount=Decimal(str(student.monthly_amount or 0)),
                status=student.fee_status,
                due_date=student.due_date,
                last_paid=student.last_paid,
            ),
        )


@dataclass
class NotificationLogEntry:
    student_id: str
    student_name: str
    phone_number: str
    status: str
    message: str
    type: str = "fee_reminder"
    template_name: str = TEMPLATE_NAME
    message_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    response_data: Dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "student_id": self.student_id,
            "student_name": self.student_name,
            "phone_number": self.phone_number,
            "status": self.status,
            "message": self.message,
            "type": self.type,
            "template_name": self.template_name,
            "message_id": self.message_id,
            "metadata": self.metadata,
            "response_data": self.response_data,
            "created_at": self.created_at.isoformat(),
        }


@dataclass
class PhoneGrouping:
    groups: Dict[str, List[StudentRecord]]
    skipped: List[StudentRecord]

    @property
    def duplicates_prevented(self) -> int:
        return sum(len(g) - 1 for g in self.groups.values())


@dataclass
class ReminderSummary:
    total_candidates: int = 0
    unique_phones: int = 0
    successful: int = 0
    failed: int = 0
    skipped: int = 0
    window_counts: Dict[str, int] = field(default_factory=dict)
    skipped_students: List[str] = field(default_factory=list)
    entries: List[NotificationLogEntry] = field(default_factory=list)
    timestamp: datetime = field(default_factory=utc_now)

    @property
    def attempts(self) -> int:
        return self.successful + self.failed

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_candidates": self.total_candidates,
            "unique_phones": self.unique_phones,
            "successful": self.successful,
            "failed": self.failed,
            "skipped": self.skipped,
            "window_counts": self.window_counts,
            "skipped_students": self.skipped_students,
            "timestamp": self.timestamp.isoformat(),
            "notifications": [e.to_dict() for e in self.entries],
        }


def is_reminder_eligible(record: StudentRecord) -> bool:
    return record.fee.status != PAID and record.fee.due_date is not None


def classify(record: StudentRecord, today: date) -> Optional[str]:
    """Window for one record, or None when it needs no reminder today."""
    if not is_reminder_eligible(record):
        return None
    due = record.fee.due_date
    if isinstance(due, datetime):
        due = due.date()
    if due < today:
        return OVERDUE
    for window, offset in WINDOW_OFFSETS.items():
        if due == today + timedelta(days=offset):
            return window
    return None


def bucket_by_window(records: Iterable[StudentRecord], today: date) -> Dict[str, List[StudentRecord]]:
    buckets: Dict[str, List[StudentRecord]] = {w: [] for w in WINDOW_ORDER}
    for record in records:
        window = classify(record, today)
        if window is not None:
            buckets[window].append(record)
    return buckets


def select_due_students(records: Iterable[StudentRecord], today: date) -> List[StudentRecord]:
    buckets = bucket_by_window(records, today)
    return [r for w in WINDOW_ORDER for r in buckets[w]]


def filter_candidates(
    records: Iterable[StudentRecord],
    today: date,
    due_in_days: Optional[int] = None,
    course_name: Optional[str] = None,
) -> List[StudentRecord]:
    """Manual filter: unpaid fees narrowed by course and/or exact due offset."""
    course = (course_name or "").strip().lower()
    target = today + timedelta(days=due_in_days) if due_in_days is not None else None
    out = []
    for record in records:
        if not is_reminder_eligible(record):
            continue
        if course and (record.course_name or "").strip().lower() != course:
            continue
        if target is not None and record.fee.due_date != target:
            continue
        out.append(record)
    return out


def group_by_phone(candidates: Iterable[StudentRecord]) -> PhoneGrouping:
    groups: Dict[str, List[StudentRecord]] = {}
    skipped: List[StudentRecord] = []
    for record in candidates:
        phone = normalize_phone(record.phone_number)
        if not phone:
            logger.warning("Student %s (%s) has no phone number. Skipping.", record.name, record.id)
            skipped.append(record)
            continue
        groups.setdefault(phone, []).append(record)
    return PhoneGrouping(groups=groups, skipped=skipped)


def _metadata(rep: StudentRecord, group: Sequence[StudentRecord], today: Optional[date]) -> Dict[str, Any]:
    meta: Dict[str, Any] = {
        "amount": float(rep.fee.monthly_amount),
        "course": rep.course_name,
        "due_date": format_due_date(rep.fee.due_date),
        "related_students": [s.id for s in group[1:]],
    }
    if today is not None:
        meta["window"] = classify(rep, today)
    return meta


@dataclass
class Delivery:
    phone: str
    group: List[StudentRecord]
    result: Optional[SendResult]
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.result is not None and self.result.success

    @property
    def representative(self) -> StudentRecord:
        return self.group[0]

    def response_data(self) -> Dict[str, Any]:
        return self.result.to_dict() if self.result is not None else {"error": self.error}


def dispatch(
    groups: Dict[str, List[StudentRecord]],
    sender: NotificationSender,
    compose: Callable[[str, List[StudentRecord]], Tuple[str, Dict[str, Any]]],
    ticker: Optional[FixedIntervalTicker] = None,
) -> Iterator[Delivery]:
    """Send one message per phone group, in order, paced by ``ticker``.

    ``compose(phone, group)`` returns the text and sender metadata. A sender
    exception or unsuccessful result becomes a failed Delivery; the next
    group is always attempted.
    """
    ticker = ticker or FixedIntervalTicker(DEFAULT_SEND_INTERVAL)
    for phone, group in groups.items():
        text, meta = compose(phone, group)
        ticker.wait()
        try:
            result = sender.send(phone, text, meta)
        except Exception as e:
            yield Delivery(phone, group, None, str(e))
            continue
        yield Delivery(phone, group, result, None if result.success else (result.error or "unknown error"))


def _append(log_writer: Optional[Callable[[NotificationLogEntry], Any]], entry: NotificationLogEntry) -> None:
    if log_writer is None:
        return
    try:
        log_writer(entry)
    except Exception:
        logger.exception("Failed to write notification log for %s", entry.phone_number)


def send_reminders(
    groups: Dict[str, List[StudentRecord]],
    sender: NotificationSender,
    log_writer: Optional[Callable[[NotificationLogEntry], Any]] = None,
    ticker: Optional[FixedIntervalTicker] = None,
    brand: str = "AIICT",
    today: Optional[date] = None,
    log_type: str = "fee_reminder",
    extra_metadata: Optional[Dict[str, Any]] = None,
) -> ReminderSummary:
    """Send one reminder per phone group, one after the other.

    A failed send (exception or unsuccessful result) is logged and counted;
    the loop always moves on to the next group.
    """
    summary = ReminderSummary(
        total_candidates=sum(len(g) for g in groups.values()),
        unique_phones=len(groups),
    )
    metas: Dict[str, Dict[str, Any]] = {}

    def compose(phone: str, group: List[StudentRecord]) -> Tuple[str, Dict[str, Any]]:
        rep = group[0]
        meta = _metadata(rep, group, today)
        if extra_metadata:
            meta.update(extra_metadata)
        metas[phone] = meta
        text = fee_reminder_message(brand, rep.name, rep.fee.monthly_amount, rep.course_name, rep.fee.due_date)
        return text, dict(meta, student_id=rep.id, student_name=rep.name, message_type=log_type)

    for delivery in dispatch(groups, sender, compose, ticker):
        rep, phone = delivery.representative, delivery.phone
        entry = NotificationLogEntry(
            student_id=rep.id,
            student_name=rep.name,
            phone_number=phone,
            status="sent" if delivery.ok else "failed",
            message=f"Fee reminder for {rep.course_name or 'course'} - Due on {format_due_date(rep.fee.due_date)}",
            type=log_type,
            message_id=delivery.result.provider_message_id if delivery.result is not None else None,
            metadata=metas[phone],
            response_data=delivery.response_data(),
        )
        if delivery.ok:
            summary.successful += 1
            logger.info("Reminder sent to %s (%s)", rep.name, phone)
        else:
            entry.metadata["error"] = delivery.error
            summary.failed += 1
            logger.error("Failed to notify %s (%s): %s", rep.name, phone, delivery.error)
        _append(log_writer, entry)
        summary.entries.append(entry)
    return summary


def run_reminders(
    fetch_records: Callable[[], Iterable[Any]],
    sender: NotificationSender,
    today: date,
    log_writer: Optional[Callable[[NotificationLogEntry], Any]] = None,
    ticker: Optional[FixedIntervalTicker] = None,
    brand: str = "AIICT",
    due_in_days: Optional[int] = None,
    course_name: Optional[str] = None,
) -> ReminderSummary:
    """One complete reminder run.

    Without filters the three due windows apply; with ``due_in_days`` or
    ``course_name`` the manual filter replaces them. Raises ReminderRunError
    if the snapshot cannot be fetched.
    """
    try:
        records = [r if isinstance(r, StudentRecord) else StudentRecord.from_model(r) for r in fetch_records()]
    except Exception as e:
        raise ReminderRunError(f"Could not load students with pending fees: {e}") from e
    logger.info("Found %d students with pending fees", len(records))

    manual = due_in_days is not None or bool(course_name)
    if manual:
        candidates = filter_candidates(records, today, due_in_days=due_in_days, course_name=course_name)
        window_counts = {"filtered": len(candidates)}
        extra = {"filter": {"due_in_days": due_in_days, "course_name": course_name}}
        log_type = "filtered_fee_reminder"
    else:
        candidates = select_due_students(records, today)
        window_counts = {w: 0 for w in WINDOW_ORDER}
        for record in candidates:
            window_counts[classify(record, today)] += 1
        extra = None
        log_type = "fee_reminder"
        logger.info(
            "Found: %d overdue, %d due tomorrow, %d due in 3 days",
            window_counts[OVERDUE], window_counts[DUE_TOMORROW], window_counts[DUE_IN_THREE_DAYS],
        )

    grouping = group_by_phone(candidates)
    logger.info("Grouped %d students into %d unique phone numbers", len(candidates), len(grouping.groups))
    if grouping.duplicates_prevented:
        logger.info("Prevented %d duplicate messages to the same phone numbers", grouping.duplicates_prevented)

    summary = send_reminders(
        grouping.groups,
        sender,
        log_writer=log_writer,
        ticker=ticker,
        brand=brand,
        today=today,
        log_type=log_type,
        extra_metadata=extra,
    )
    summary.total_candidates = len(candidates)
    summary.skipped = len(grouping.skipped)
    summary.skipped_students = [r.id for r in grouping.skipped]
    summary.window_counts = window_counts
    logger.info(
        "Reminder run completed: %d candidates, %d phones, %d sent, %d failed, %d skipped",
        summary.total_candidates, summary.unique_phones, summary.successful, summary.failed, summary.skipped,
    )
    return summary
