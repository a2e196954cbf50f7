"""Numbering Resolver - Next sequence number for a report within a case"""
from typing import Iterable, List, Optional

from ..domain.models import Report, CaseFolder, CaseSummary
from ..domain.enums import ReportStatus
from .case_key import normalize_case_key, same_case


def _sent_numbers(
    key: str,
    all_reports: Iterable[Report],
    case_folder: Optional[CaseFolder]
) -> List[int]:
    """Sequence numbers already used by sent reports of the case"""
    numbers: List[int] = []

    if case_folder is not None and same_case(case_folder.case_key, key):
        numbers.extend(entry.sequence_number for entry in case_folder.sent_reports)

    for report in all_reports:
        if report.status != ReportStatus.SENT:
            continue
        if not same_case(report.case_key, key):
            continue
        numbers.append(report.sequence_number)

    return numbers


def latest_sequence_number(
    case_key: Optional[str],
    all_reports: Iterable[Report],
    case_folder: Optional[CaseFolder] = None
) -> Optional[int]:
    """Highest sequence number used by a sent report of the case, if any"""
    key = normalize_case_key(case_key)
    if not key:
        return None
    numbers = _sent_numbers(key, all_reports, case_folder)
    return max(numbers) if numbers else None


def next_sequence_number(
    case_key: Optional[str],
    all_reports: Iterable[Report],
    case_folder: Optional[CaseFolder] = None
) -> int:
    """
    Resolve the next sequence number for a new report in a case.

    Only SENT reports and the folder's sent log count, so an abandoned draft
    never reserves a number. The live report list and the folder log may
    disagree; the higher watermark wins.

    Returns:
        max(used numbers) + 1, or 1 for a new or caseless case
    """
    latest = latest_sequence_number(case_key, all_reports, case_folder)
    return (latest or 0) + 1


def summarize_case(
    case_key: str,
    all_reports: Iterable[Report],
    case_folder: Optional[CaseFolder] = None
) -> CaseSummary:
    """Numbering and open-work overview of a case"""
    key = normalize_case_key(case_key)
    reports = [r for r in all_reports if same_case(r.case_key, key)]
    latest = latest_sequence_number(key, reports, case_folder)
    has_open_work = any(
        r.status != ReportStatus.SENT and not r.is_deleted for r in reports
    )
    return CaseSummary(
        case_key=key,
        latest_sequence_number=latest,
        next_sequence_number=(latest or 0) + 1,
        sent_count=len(case_folder.sent_reports) if case_folder is not None else 0,
        has_open_work=has_open_work,
        is_closed=case_folder.is_closed if case_folder is not None else False,
    )
