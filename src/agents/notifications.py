"""Spam heuristic and the text of alerts sent to the person being screened for."""

from __future__ import annotations

from datetime import datetime

from agents.sessions import Classification

SPAM_TERMS: tuple[str, ...] = ("spam", "robotic", "automated", "robocall", "recorded message")
UNRESOLVED_NAMES: frozenset[str] = frozenset({"", "unknown", "unknown caller", "unknown_caller", "n/a"})

REPLY_HELP = "Please reply with ACCEPT to connect, DENY to decline, or BLOCK to block this number permanently."


def classify_caller(name: str, summary: str) -> Classification:
    """Flag spam when the summary uses spam-indicative terms or the name never resolved."""

    lowered = summary.lower()
    if any(term in lowered for term in SPAM_TERMS):
        return Classification.SPAM
    if name.strip().lower() in UNRESOLVED_NAMES:
        return Classification.SPAM
    return Classification.LEGITIMATE


def _short_id(call_id: str) -> str:
    return f"{call_id[:8]}..."


def _timestamp(now: datetime | None) -> str:
    return (now or datetime.now()).strftime("%H:%M:%S")


def format_screening_alert(
    *,
    call_id: str,
    caller_address: str,
    name: str,
    summary: str,
    classification: Classification,
    now: datetime | None = None,
) -> str:
    if classification is Classification.SPAM:
        return (
            f"SPAM ALERT ({_timestamp(now)})\n\n"
            f"From: {caller_address}\n"
            f"Caller: {name}\n"
            f"Details: {summary}\n"
            f"Call ID: {_short_id(call_id)}\n\n"
            "This call was automatically screened as likely spam.\n"
            "Reply 'BLOCK' to block this number permanently."
        )
    return (
        f"Call Screening Alert ({_timestamp(now)})\n\n"
        f"From: {caller_address}\n"
        f"Caller: {name}\n"
        f"Reason: {summary}\n"
        f"Call ID: {_short_id(call_id)}\n\n"
        "Reply 'ACCEPT' to connect, 'DENY' to decline, or 'BLOCK' to block this number."
    )


def format_termination_alert(*, call_id: str, caller_address: str, now: datetime | None = None) -> str:
    return (
        f"SPAM ALERT ({_timestamp(now)})\n\n"
        f"From: {caller_address}\n"
        "Caller: Unknown Caller\n"
        "Details: Call automatically screened as spam and terminated\n"
        f"Call ID: {_short_id(call_id)}\n\n"
        "This call was automatically hung up due to spam detection.\n"
        "Reply 'BLOCK' to block this number permanently."
    )
