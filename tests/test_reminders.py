from datetime import date, timedelta
from decimal import Decimal
from unittest.mock import patch

import pytest

from conftest import FakeClock, RecordingSender
from utils.dispatch import FixedIntervalTicker
from utils.reminders import (
    DUE_IN_THREE_DAYS,
    DUE_TOMORROW,
    OVERDUE,
    FeeRecord,
    ReminderRunError,
    StudentRecord,
    bucket_by_window,
    classify,
    dispatch,
    filter_candidates,
    group_by_phone,
    run_reminders,
    select_due_students,
    send_reminders,
)

TODAY = date(2024, 1, 1)


def rec(id, due_offset=1, phone="9876543210", status="pending", course="Tally", amount="1500", name=None):
    due = TODAY + timedelta(days=due_offset) if due_offset is not None else None
    return StudentRecord(
        id=id,
        name=name or f"Student {id}",
        phone_number=phone,
        course_name=course,
        fee=FeeRecord(monthly_amount=Decimal(amount), status=status, due_date=due),
    )


def no_wait():
    clock = FakeClock()
    return FixedIntervalTicker(0, clock=clock, sleep=clock.sleep)


def test_classify_windows():
    assert classify(rec("a", 1), TODAY) == DUE_TOMORROW
    assert classify(rec("b", 3), TODAY) == DUE_IN_THREE_DAYS
    assert classify(rec("c", -1), TODAY) == OVERDUE
    assert classify(rec("d", -400), TODAY) == OVERDUE
    assert classify(rec("e", 0), TODAY) is None
    assert classify(rec("f", 2), TODAY) is None
    assert classify(rec("g", 7), TODAY) is None


def test_due_tomorrow_lands_in_one_window_for_any_today():
    for offset in range(0, 400, 37):
        today = TODAY + timedelta(days=offset)
        r = StudentRecord("x", "X", "9876543210", "Tally",
                          FeeRecord(status="pending", due_date=today + timedelta(days=1)))
        buckets = bucket_by_window([r], today)
        assert buckets[DUE_TOMORROW] == [r]
        assert buckets[DUE_IN_THREE_DAYS] == []
        assert buckets[OVERDUE] == []


def test_paid_and_undated_records_never_selected():
    records = [
        rec("paid", 1, status="paid"),
        rec("paid-overdue", -5, status="paid"),
        rec("no-date", None),
        rec("ok", 1),
        rec("overdue-status", -2, status="overdue"),
    ]
    selected = select_due_students(records, TODAY)
    assert [r.id for r in selected] == ["ok", "overdue-status"]
    assert all(r.fee.status != "paid" for r in selected)


def test_selection_order_is_tomorrow_then_three_days_then_overdue():
    records = [rec("late", -3), rec("three", 3), rec("tomorrow", 1)]
    assert [r.id for r in select_due_students(records, TODAY)] == ["tomorrow", "three", "late"]


def test_group_by_phone_normalizes_and_skips_missing():
    grouping = group_by_phone([
        rec("1", phone="+919876543210"),
        rec("2", phone=" 919876543210 "),
        rec("3", phone=None),
        rec("4", phone="   "),
        rec("5", phone="9123456789"),
    ])
    assert list(grouping.groups) == ["919876543210", "9123456789"]
    assert [r.id for r in grouping.groups["919876543210"]] == ["1", "2"]
    assert [r.id for r in grouping.skipped] == ["3", "4"]
    assert grouping.duplicates_prevented == 1


def test_shared_phone_sends_once_with_related_students():
    records = [
        rec("1", 1, phone="91900000"),
        rec("2", 1, phone="91900000"),
        rec("3", 3, phone="91911111"),
    ]
    sender = RecordingSender()
    logged = []
    summary = run_reminders(lambda: records, sender, TODAY, log_writer=logged.append, ticker=no_wait())

    assert summary.unique_phones == 2
    assert len(sender.calls) == 2
    assert sender.phones == ["91900000", "91911111"]
    first = logged[0]
    assert first.student_id == "1"
    assert first.metadata["related_students"] == ["2"]
    assert logged[1].metadata["related_students"] == []
    assert summary.successful == 2 and summary.failed == 0
    assert summary.window_counts == {DUE_TOMORROW: 2, DUE_IN_THREE_DAYS: 1, OVERDUE: 0}


def test_one_send_per_phone():
    records = [rec(str(i), offset, phone=phone)
               for i, (offset, phone) in enumerate([(1, "a1"), (3, "a1"), (-1, "b2"), (-9, "a1"), (1, "c3")])]
    sender = RecordingSender()
    summary = run_reminders(lambda: records, sender, TODAY, ticker=no_wait())
    assert len(sender.phones) == len(set(sender.phones)) == 3
    assert summary.attempts == summary.unique_phones == 3


def test_representative_comes_from_earliest_window():
    records = [rec("late", -2, phone="9000000001"), rec("soon", 1, phone="9000000001")]
    logged = []
    run_reminders(lambda: records, RecordingSender(), TODAY, log_writer=logged.append, ticker=no_wait())
    assert len(logged) == 1
    assert logged[0].student_id == "soon"
    assert logged[0].metadata["related_students"] == ["late"]
    assert logged[0].metadata["window"] == DUE_TOMORROW


def test_missing_phone_is_skipped_not_failed():
    records = [rec("1", 1, phone=None), rec("2", 1, phone="9876543210")]
    sender = RecordingSender()
    summary = run_reminders(lambda: records, sender, TODAY, ticker=no_wait())
    assert summary.skipped == 1
    assert summary.skipped_students == ["1"]
    assert summary.failed == 0
    assert sender.phones == ["9876543210"]


def test_failures_do_not_stop_the_run():
    records = [rec("1", 1, phone="1111111111"), rec("2", 1, phone="2222222222"), rec("3", 3, phone="3333333333")]
    sender = RecordingSender(raise_on={"1111111111"}, fail_on={"2222222222"})
    logged = []
    summary = run_reminders(lambda: records, sender, TODAY, log_writer=logged.append, ticker=no_wait())

    assert sender.phones == ["1111111111", "2222222222", "3333333333"]
    assert [e.status for e in logged] == ["failed", "failed", "sent"]
    assert logged[0].metadata["error"] == "connection reset"
    assert logged[1].metadata["error"] == "gateway rejected number"
    assert summary.successful == 1 and summary.failed == 2


def test_log_writer_errors_are_swallowed():
    def broken_writer(entry):
        raise RuntimeError("log store down")

    records = [rec("1", 1, phone="1111111111"), rec("2", 3, phone="2222222222")]
    sender = RecordingSender()
    summary = run_reminders(lambda: records, sender, TODAY, log_writer=broken_writer, ticker=no_wait())
    assert summary.successful == 2
    assert len(summary.entries) == 2


def test_fetch_failure_aborts_without_sending():
    def fetch():
        raise ConnectionError("db unreachable")

    sender = RecordingSender()
    with pytest.raises(ReminderRunError, match="db unreachable"):
        run_reminders(fetch, sender, TODAY, ticker=no_wait())
    assert sender.calls == []


def test_sends_are_paced_by_the_ticker():
    clock = FakeClock()
    ticker = FixedIntervalTicker(0.5, clock=clock, sleep=clock.sleep)
    records = [rec(str(i), 1, phone=f"900000000{i}") for i in range(3)]
    run_reminders(lambda: records, RecordingSender(), TODAY, ticker=ticker)
    assert clock.sleeps == [0.5, 0.5]
    assert ticker.ticks == 3


def test_message_and_log_text():
    records = [rec("1", 1, phone="9876543210", name="Asha", course="Tally", amount="1500")]
    sender = RecordingSender()
    summary = send_reminders(group_by_phone(records).groups, sender, ticker=no_wait(), brand="AIICT")
    _, text, meta = sender.calls[0]
    assert text.startswith("AIICT Fee Reminder: Hi Asha, your fee of Rs.1500 for Tally is due on 02/01/2024.")
    assert meta["student_id"] == "1"
    entry = summary.entries[0]
    assert entry.message == "Fee reminder for Tally - Due on 02/01/2024"
    assert entry.metadata["amount"] == 1500.0
    assert entry.message_id == "req-1"


def test_filter_candidates_by_course_and_offset():
    records = [
        rec("1", 5, course="Tally"),
        rec("2", 5, course="tally "),
        rec("3", 5, course="DCA"),
        rec("4", 2, course="Tally"),
        rec("5", 5, course="Tally", status="paid"),
    ]
    assert [r.id for r in filter_candidates(records, TODAY, due_in_days=5, course_name="TALLY")] == ["1", "2"]
    assert [r.id for r in filter_candidates(records, TODAY, course_name="dca")] == ["3"]
    assert [r.id for r in filter_candidates(records, TODAY, due_in_days=2)] == ["4"]


def test_manual_filter_run_uses_filtered_log_type():
    records = [rec("1", 10, phone="1111111111", course="DCA"), rec("2", 1, phone="2222222222", course="Tally")]
    logged = []
    summary = run_reminders(lambda: records, RecordingSender(), TODAY, log_writer=logged.append,
                            ticker=no_wait(), course_name="DCA")
    assert summary.window_counts == {"filtered": 1}
    assert [e.type for e in logged] == ["filtered_fee_reminder"]
    assert logged[0].metadata["filter"] == {"due_in_days": None, "course_name": "DCA"}


def test_summary_to_dict_lists_notifications():
    records = [rec("1", 1, phone="9876543210")]
    summary = run_reminders(lambda: records, RecordingSender(), TODAY, ticker=no_wait())
    out = summary.to_dict()
    assert out["successful"] == 1
    assert out["notifications"][0]["status"] == "sent"
    assert out["notifications"][0]["phone_number"] == "9876543210"


def test_daily_run_selects_through_select_due_students():
    records = [rec("late", -3, phone="1111111111"), rec("soon", 1, phone="2222222222"), rec("idle", 9)]
    with patch('utils.reminders.select_due_students', wraps=select_due_students) as selector:
        summary = run_reminders(lambda: records, RecordingSender(), TODAY, ticker=no_wait())
    selector.assert_called_once()
    assert summary.window_counts == {DUE_TOMORROW: 1, DUE_IN_THREE_DAYS: 0, OVERDUE: 1}
    assert [e.student_id for e in summary.entries] == ["soon", "late"]


def test_dispatch_isolates_failures_and_paces():
    clock = FakeClock()
    ticker = FixedIntervalTicker(0.5, clock=clock, sleep=clock.sleep)
    groups = group_by_phone([rec("1", phone="1111111111"), rec("2", phone="2222222222"),
                             rec("3", phone="3333333333")]).groups
    sender = RecordingSender(raise_on={"1111111111"}, fail_on={"2222222222"})

    deliveries = list(dispatch(groups, sender, lambda phone, group: (f"hi {group[0].id}", {}), ticker))

    assert [d.ok for d in deliveries] == [False, False, True]
    assert [d.error for d in deliveries] == ["connection reset", "gateway rejected number", None]
    assert deliveries[0].response_data() == {"error": "connection reset"}
    assert deliveries[2].result.provider_message_id == "req-3"
    assert [c[1] for c in sender.calls] == ["hi 1", "hi 2", "hi 3"]
    assert clock.sleeps == [0.5, 0.5]
