"""
SMS text helpers: phone normalization, GSM-safe text and message wording.

Fast2SMS bills a Unicode message as two units, so every outgoing body goes
through ``optimize_sms_text`` first.
"""
from __future__ import annotations

import re
from typing import Any

from utils.timezone_helpers import format_due_date

_REPLACEMENTS: list[tuple[str, str]] = [
    (r"₹", "Rs."),
    (r"€", "EUR"),
    (r"£", "GBP"),
    (r"¥", "JPY"),
    (r"✓|✅|☑️?|✔️?", "+"),
    (r"❌|✖️?|✘", "X"),
    (r"•|◦|‣|⦿|⁃", "-"),
    (r"→|⟶|➔|➜", "->"),
    (r"←|⟵|⟸|⬅️?", "<-"),
    (r"[“”„]", '"'),
    (r"[‘’]", "'"),
    (r"[—–]", "-"),
    (r"😊|😀|😃|😄", ":)"),
    (r"😢|😭|😥", ":("),
]

_EMOJI = re.compile(
    "["
    "\U0001F600-\U0001F64F"
    "\U0001F300-\U0001F5FF"
    "\U0001F680-\U0001F6FF"
    "\u2600-\u26FF"
    "\u2700-\u27BF"
    "\U0001F900-\U0001F9FF"
    "\U0001F1E0-\U0001F1FF"
    "\uFE0F"
    "]"
)


def optimize_sms_text(message: str | None) -> str:
    """Replace Unicode symbols with GSM-7 friendly equivalents and drop emoji."""
    text = message or ""
    for pattern, repl in _REPLACEMENTS:
        text = re.sub(pattern, repl, text)
    text = _EMOJI.sub("", text)
    return re.sub(r"\s+", " ", text).strip()


def normalize_phone(raw: Any) -> str | None:
    """Grouping key for a phone number: trimmed, leading '+' removed."""
    if raw is None:
        return None
    phone = str(raw).strip()
    if phone.startswith("+"):
        phone = phone[1:]
    return phone or None


def format_phone_number(raw: Any) -> str | None:
    """Ten-digit form expected by the Fast2SMS ``numbers`` parameter."""
    if not raw:
        return None
    digits = re.sub(r"\D", "", str(raw))
    if digits.startswith("91") and len(digits) == 12:
        return digits[2:]
    if len(digits) == 10:
        return digits
    if digits.startswith("91"):
        return digits[2:]
    if len(digits) > 10:
        return digits[-10:]
    return digits


def is_valid_phone_number(phone: str | None) -> bool:
    return bool(phone) and re.fullmatch(r"\d{10}", phone) is not None


def _display_amount(amount: Any) -> str:
    if amount is None or amount == "":
        return "N/A"
    try:
        value = float(amount)
    except (TypeError, ValueError):
        return str(amount)
    return f"{value:.0f}" if value == int(value) else f"{value:.2f}"


def fee_reminder_message(brand: str, name: str, amount: Any, course: str | None, due_date: Any) -> str:
    return (
        f"{brand} Fee Reminder: Hi {name or 'Student'}, your fee of Rs.{_display_amount(amount)} "
        f"for {course or 'your course'} is due on {format_due_date(due_date)}. "
        "Please settle your pending dues. Reply STOP to opt out."
    )


def payment_confirmation_message(brand: str, name: str, amount: Any, course: str | None, paid_on: str) -> str:
    return (
        f"{brand} Payment Confirmation: Payment of Rs.{_display_amount(amount)} received for "
        f"{name}'s {course or 'course'} fee on {paid_on}. Thank you!"
    )


def welcome_message(brand: str, name: str, course: str | None, batch_time: str | None) -> str:
    batch = f" Your batch time is {batch_time}." if batch_time else ""
    return f"{brand}: Welcome {name}! You are enrolled in {course or 'your course'}.{batch}"
