"""Lock State Evaluator - Decide whether a report may currently be mutated"""
from datetime import datetime
from typing import Optional

from ..config.settings import settings
from ..domain.models import Report, CaseFolder, LockState
from ..domain.enums import ReportStatus, LockType
from ..utils.time import add_days, days_until_ceil, ensure_utc, format_iso


def effective_extension_days(report: Report, now: datetime) -> int:
    """Sum of extension days granted on or before now"""
    now = ensure_utc(now)
    return sum(
        ext.days for ext in report.lock_extensions
        if ensure_utc(ext.at) <= now and ext.days > 0
    )


def compute_auto_lock_horizon(
    report: Report,
    now: datetime,
    auto_lock_days: Optional[int] = None
) -> Optional[datetime]:
    """
    Auto-lock horizon: first send + base window + granted extensions.

    Returns:
        None if the report was never sent
    """
    if report.first_sent_at is None:
        return None
    base_days = settings.auto_lock_days if auto_lock_days is None else auto_lock_days
    total_days = base_days + effective_extension_days(report, now)
    return add_days(ensure_utc(report.first_sent_at), total_days)


def compute_lock_state(
    report: Report,
    case_folder: Optional[CaseFolder],
    now: datetime,
    auto_lock_days: Optional[int] = None
) -> LockState:
    """
    Compute the effective lock state of a report.

    Evaluation order (first match wins):
    1. Closed case folder -> CASE_CLOSED
    2. Manual lock on the report -> MANUAL
    3. Status other than SENT -> unlocked
    4. now at or past first_sent_at + window + extensions -> AUTO

    Pure: every input, including the clock, is passed in.
    """
    now = ensure_utc(now)

    if case_folder is not None and case_folder.closed_at is not None:
        return LockState(
            is_locked=True,
            lock_type=LockType.CASE_CLOSED,
            lock_at=case_folder.closed_at,
            reason_summary="The case is closed; the report is read-only.",
        )

    if report.manual_lock is not None:
        reason = report.manual_lock.reason
        return LockState(
            is_locked=True,
            lock_type=LockType.MANUAL,
            lock_at=report.manual_lock.at,
            reason_summary=f"Locked manually: {reason}" if reason else "The report was locked manually.",
        )

    if report.status != ReportStatus.SENT:
        return LockState()

    horizon = compute_auto_lock_horizon(report, now, auto_lock_days)
    if horizon is None:
        return LockState()

    if now >= horizon:
        return LockState(
            is_locked=True,
            lock_type=LockType.AUTO,
            lock_at=horizon,
            auto_lock_at=horizon,
            reason_summary="The editing window after sending has elapsed.",
        )

    remaining = days_until_ceil(horizon, now)
    return LockState(
        auto_lock_at=horizon,
        remaining_days=remaining,
        reason_summary=f"The report locks automatically in about {remaining} days ({format_iso(horizon)}).",
    )
