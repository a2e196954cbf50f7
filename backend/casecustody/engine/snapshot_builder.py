"""Snapshot Builder - Immutable copies of a report at send time"""
import copy
from datetime import datetime
from typing import Any, Dict, Optional

from ..domain.models import Report, ReportSnapshot, CONTENT_FIELDS
from ..domain.enums import ReportStatus
from ..utils.idgen import generate_snapshot_id


def build_snapshot(
    report: Report,
    sent_at: datetime,
    file_name: Optional[str] = None,
    is_resend: bool = False,
    is_correction: bool = False,
    correction_reason: Optional[str] = None,
    snapshot_id: Optional[str] = None
) -> ReportSnapshot:
    """
    Build an immutable snapshot of a report.

    All content is deep-copied so later edits to the live report never reach
    the snapshot. The revision index counts earlier sends of the same report.
    Side-effect free apart from drawing a fresh snapshot ID when none is given.
    """
    payload: Dict[str, Any] = {
        field: copy.deepcopy(getattr(report, field)) for field in CONTENT_FIELDS
    }
    payload["expenses_items"] = [item.model_copy(deep=True) for item in report.expenses_items]

    return ReportSnapshot(
        snapshot_id=snapshot_id or generate_snapshot_id(),
        report_id=report.id,
        created_at=sent_at,
        sequence_number=report.sequence_number,
        case_key=report.case_key,
        status=ReportStatus.SENT,
        file_name=file_name,
        is_resend=is_resend,
        is_correction=is_correction,
        correction_reason=correction_reason,
        revision_index=len(report.history),
        **payload,
    )


def seed_content_from_snapshot(snapshot: ReportSnapshot) -> Dict[str, Any]:
    """
    Content for a new report based on an earlier snapshot.

    Returns a fresh deep copy; the snapshot itself is never handed out for
    reuse. The recurring sub-report key is kept so a follow-up financial
    report joins the same supersession chain.
    """
    seeded: Dict[str, Any] = {}
    for field in CONTENT_FIELDS:
        value = copy.deepcopy(getattr(snapshot, field))
        if isinstance(value, tuple):
            value = [v.model_copy(deep=True) if hasattr(v, "model_copy") else v for v in value]
        seeded[field] = value
    return seeded
