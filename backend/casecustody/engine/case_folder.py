"""Case Folder Aggregator - Append-only sent history and closure of a case"""
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from pydantic import ValidationError as PydanticValidationError

from ..domain.models import (
    Report, ReportSnapshot, CaseFolder, SentReportEntry, EngineResult,
    DISPLAY_FIELDS, find_supersession_problems
)
from ..domain.enums import ReportStatus, Signal
from ..domain.errors import SupersessionChainError
from ..utils.time import ensure_utc
from ..utils.logger import get_logger
from .case_key import normalize_case_key, same_case
from .snapshot_builder import build_snapshot

logger = get_logger(__name__)


def _rebuild(folder: CaseFolder, **updates: Any) -> CaseFolder:
    """Build a new folder from an old one, re-running construction checks"""
    data = folder.model_dump()
    data.update(updates)
    try:
        return CaseFolder.model_validate(data)
    except PydanticValidationError as e:
        raise SupersessionChainError(
            f"Case folder {folder.case_key} failed validation",
            details={"case_key": folder.case_key, "errors": str(e)}
        )


def relink_supersession(entries: List[SentReportEntry]) -> List[SentReportEntry]:
    """
    Rebuild supersession pointers from log order.

    Used only when merging folders whose chains collide; within each
    recurring key every entry is superseded by the next one.
    """
    heads: Dict[str, int] = {}
    relinked: List[SentReportEntry] = []
    for entry in entries:
        entry = entry.model_copy(update={"supersedes": None, "superseded_by": None})
        key = entry.recurring_key
        if key:
            prior_index = heads.get(key)
            if prior_index is not None:
                prior = relinked[prior_index]
                relinked[prior_index] = prior.model_copy(update={"superseded_by": entry.entry_id})
                entry = entry.model_copy(update={"supersedes": prior.entry_id})
            heads[key] = len(relinked)
        relinked.append(entry)
    return relinked


class CaseFolderAggregator:
    """
    Pure operations on case folders.

    Every method takes the current persisted folder plus the incoming report
    and returns a new folder; inputs are never modified. Re-running an
    operation with the same inputs yields the same folder.
    """

    # =========================================================================
    # Upsert & Append
    # =========================================================================

    def upsert_from_report(
        self,
        folder: Optional[CaseFolder],
        report: Report,
        now: datetime
    ) -> Optional[CaseFolder]:
        """
        Create or refresh a folder from a report.

        Display fields are overwritten by non-empty report values; sent
        history is never touched. Caseless reports leave the folder as is.
        """
        key = normalize_case_key(report.case_key)
        if not key:
            return folder
        if folder is not None and normalize_case_key(folder.case_key) != key:
            logger.warning(
                f"Report case key does not match folder {folder.case_key}",
                extra={"report_id": report.id, "case_key": key}
            )
            return folder

        if folder is None:
            folder = CaseFolder(case_key=key, created_at=now, updated_at=now)

        updates: Dict[str, Any] = {"updated_at": now}
        for field in DISPLAY_FIELDS:
            value = (getattr(report, field) or "").strip()
            if value:
                updates[field] = value

        if report.id not in folder.report_ids:
            updates["report_ids"] = [*folder.report_ids, report.id]

        subject = (report.report_subject or "").strip()
        if subject and not folder.re_template:
            updates["re_template"] = subject

        return _rebuild(folder, **updates)

    def append_sent_report(
        self,
        folder: CaseFolder,
        report: Report,
        snapshot: ReportSnapshot,
        sent_at: datetime,
        file_name: Optional[str] = None,
        is_resend: bool = False
    ) -> EngineResult:
        """
        Append a sent snapshot to the folder log.

        A snapshot already present is a no-op success (DUPLICATE_SNAPSHOT).
        When the report belongs to a recurring sub-report, the current head of
        that chain is marked superseded by the new entry.
        """
        if folder.is_closed:
            return EngineResult.rejected(
                Signal.CASE_CLOSED,
                f"Case {folder.case_key} is closed",
                case_folder=folder,
                details={"case_key": folder.case_key}
            )

        key = normalize_case_key(report.case_key)
        if key != normalize_case_key(folder.case_key):
            # Treated as caseless: nothing to append
            logger.warning(
                "Sent report does not belong to folder; skipping append",
                extra={"report_id": report.id, "case_key": folder.case_key}
            )
            return EngineResult.accepted(
                case_folder=folder,
                details={"skipped": True, "case_key": folder.case_key}
            )

        existing = folder.find_entry(snapshot.snapshot_id)
        if existing is not None:
            logger.info(
                f"Snapshot {snapshot.snapshot_id} already in case folder",
                extra={"report_id": report.id, "case_key": folder.case_key, "signal": Signal.DUPLICATE_SNAPSHOT.value}
            )
            return EngineResult.accepted(
                Signal.DUPLICATE_SNAPSHOT,
                message="Snapshot already appended",
                case_folder=folder,
                snapshot=existing.snapshot,
                details={"entry_id": existing.entry_id}
            )

        new_folder = self._append_entry(folder, report, snapshot, sent_at, file_name, is_resend)
        entry = new_folder.sent_reports[-1]
        return EngineResult.accepted(
            case_folder=new_folder,
            snapshot=snapshot,
            details={"entry_id": entry.entry_id, "supersedes": entry.supersedes}
        )

    def _append_entry(
        self,
        folder: CaseFolder,
        report: Report,
        snapshot: ReportSnapshot,
        sent_at: datetime,
        file_name: Optional[str],
        is_resend: bool
    ) -> CaseFolder:
        recurring_key = report.expenses_sheet_id or snapshot.expenses_sheet_id
        entries = list(folder.sent_reports)

        prior_index: Optional[int] = None
        if recurring_key:
            for index in range(len(entries) - 1, -1, -1):
                candidate = entries[index]
                if candidate.recurring_key == recurring_key and candidate.superseded_by is None:
                    prior_index = index
                    break

        new_entry = SentReportEntry(
            entry_id=snapshot.snapshot_id,
            report_id=report.id,
            sequence_number=snapshot.sequence_number,
            sent_at=sent_at,
            file_name=file_name if file_name is not None else snapshot.file_name,
            is_resend=is_resend,
            recurring_key=recurring_key,
            # The folder log owns its copy; report.history holds the other
            snapshot=snapshot.model_copy(deep=True),
            supersedes=entries[prior_index].entry_id if prior_index is not None else None,
        )
        if prior_index is not None:
            entries[prior_index] = entries[prior_index].model_copy(
                update={"superseded_by": new_entry.entry_id}
            )
        entries.append(new_entry)

        report_ids = folder.report_ids if report.id in folder.report_ids else [*folder.report_ids, report.id]
        return _rebuild(folder, sent_reports=entries, report_ids=report_ids, updated_at=sent_at)

    # =========================================================================
    # Closure & Template
    # =========================================================================

    def close_case(
        self,
        folder: CaseFolder,
        reports: Iterable[Report],
        now: datetime,
        closed_by_user_id: str
    ) -> EngineResult:
        """Close a case; refused while unsent, non-deleted reports remain"""
        if folder.is_closed:
            return EngineResult.accepted(case_folder=folder, details={"already_closed": True})

        key = normalize_case_key(folder.case_key)
        open_ids = [
            r.id for r in reports
            if same_case(r.case_key, key)
            and r.status != ReportStatus.SENT
            and not r.is_deleted
        ]
        if open_ids:
            return EngineResult.rejected(
                Signal.OPEN_DRAFTS_EXIST,
                f"Case {folder.case_key} has {len(open_ids)} unsent report(s)",
                case_folder=folder,
                details={"open_report_ids": open_ids}
            )

        closed = _rebuild(folder, closed_at=now, closed_by_user_id=closed_by_user_id, updated_at=now)
        return EngineResult.accepted(case_folder=closed)

    def reopen_case(self, folder: CaseFolder, now: datetime) -> CaseFolder:
        """Clear closure metadata"""
        if not folder.is_closed:
            return folder
        return _rebuild(folder, closed_at=None, closed_by_user_id=None, updated_at=now)

    def update_re_template(self, folder: CaseFolder, value: str, now: datetime) -> CaseFolder:
        """Replace the subject template; allowed regardless of lock state"""
        trimmed = (value or "").strip()
        if trimmed == folder.re_template:
            return folder
        return _rebuild(folder, re_template=trimmed, updated_at=now)

    # =========================================================================
    # Views
    # =========================================================================

    @staticmethod
    def latest_sent_per_report(folder: CaseFolder) -> List[SentReportEntry]:
        """Latest entry per report ID, oldest send first"""
        by_report: Dict[str, SentReportEntry] = {}
        for entry in folder.sent_reports:
            current = by_report.get(entry.report_id)
            if current is None or ensure_utc(entry.sent_at) >= ensure_utc(current.sent_at):
                by_report[entry.report_id] = entry
        return sorted(by_report.values(), key=lambda e: ensure_utc(e.sent_at))

    @staticmethod
    def supersession_head(folder: CaseFolder, recurring_key: str) -> Optional[SentReportEntry]:
        """Current unsuperseded entry of a recurring sub-report"""
        for entry in reversed(folder.sent_reports):
            if entry.recurring_key == recurring_key and entry.superseded_by is None:
                return entry
        return None

    @staticmethod
    def supersession_chain(folder: CaseFolder, recurring_key: str) -> List[SentReportEntry]:
        """All entries of a recurring sub-report, oldest first"""
        return [e for e in folder.sent_reports if e.recurring_key == recurring_key]

    # =========================================================================
    # Maintenance
    # =========================================================================

    def canonicalize_keys(self, folders: Dict[str, CaseFolder]) -> Dict[str, CaseFolder]:
        """
        Re-key folders under normalized case keys, merging collisions.

        A closed folder wins over an open one, otherwise the most recently
        updated folder wins; empty display fields fall back to the other
        folder. Folders whose key normalizes to empty are dropped.
        """
        merged: Dict[str, CaseFolder] = {}
        for old_key, folder in folders.items():
            new_key = normalize_case_key(folder.case_key or old_key)
            if not new_key:
                logger.warning(f"Dropping case folder with empty key: {old_key!r}")
                continue

            folder = folder if folder.case_key == new_key else _rebuild(folder, case_key=new_key)
            existing = merged.get(new_key)
            if existing is None:
                merged[new_key] = folder
                continue

            logger.info(f"Merging colliding case folders under {new_key}", extra={"case_key": new_key})
            merged[new_key] = self._merge(existing, folder)
        return merged

    def _merge(self, a: CaseFolder, b: CaseFolder) -> CaseFolder:
        if a.is_closed != b.is_closed:
            base, other = (a, b) if a.is_closed else (b, a)
        elif ensure_utc(b.updated_at) > ensure_utc(a.updated_at):
            base, other = b, a
        else:
            base, other = a, b

        updates: Dict[str, Any] = {
            "re_template": base.re_template or other.re_template,
            "created_at": min(ensure_utc(base.created_at), ensure_utc(other.created_at)),
            "closed_at": base.closed_at or other.closed_at,
            "closed_by_user_id": base.closed_by_user_id or other.closed_by_user_id,
            "report_ids": list(dict.fromkeys([*base.report_ids, *other.report_ids])),
        }
        for field in DISPLAY_FIELDS:
            updates[field] = getattr(base, field) or getattr(other, field)

        seen = set()
        entries: List[SentReportEntry] = []
        for entry in [*base.sent_reports, *other.sent_reports]:
            if entry.entry_id in seen:
                continue
            seen.add(entry.entry_id)
            entries.append(entry)
        entries.sort(key=lambda e: ensure_utc(e.sent_at))

        heads = [e.recurring_key for e in entries if e.recurring_key and e.superseded_by is None]
        if find_supersession_problems(entries) or len(heads) != len(set(heads)):
            entries = relink_supersession(entries)
        updates["sent_reports"] = entries

        return _rebuild(base, **updates)

    def migrate_from_reports(
        self,
        folders: Dict[str, CaseFolder],
        reports: Iterable[Report],
        now: datetime
    ) -> Dict[str, CaseFolder]:
        """
        One-shot backfill of folders from existing reports.

        Every report with a case key refreshes its folder; every send in a
        SENT report's history is appended. Reports sent without history get a
        deterministic snapshot ID so re-running adds nothing.
        """
        result = dict(folders)
        for report in reports:
            key = normalize_case_key(report.case_key)
            if not key:
                continue
            stamp = report.updated_at or report.report_date or now
            folder = self.upsert_from_report(result.get(key), report, stamp)
            if folder is None:
                continue

            if report.status == ReportStatus.SENT:
                snapshots = list(report.history)
                if not snapshots:
                    sent_at = report.last_sent_at or report.report_date or now
                    snapshots = [build_snapshot(report, sent_at, snapshot_id=f"SNAP-{report.id}-legacy")]
                for snapshot in snapshots:
                    if folder.find_entry(snapshot.snapshot_id) is not None:
                        continue
                    folder = self._append_entry(
                        folder, report, snapshot, snapshot.created_at,
                        snapshot.file_name, snapshot.is_resend
                    )
            result[key] = folder
        return result


def canonicalize_case_folder_keys(folders: Dict[str, CaseFolder]) -> Dict[str, CaseFolder]:
    """Re-key a folder map under normalized case keys"""
    return CaseFolderAggregator().canonicalize_keys(folders)


def migrate_case_folders_from_reports(
    folders: Dict[str, CaseFolder],
    reports: Iterable[Report],
    now: datetime
) -> Dict[str, CaseFolder]:
    """Backfill case folders from the live report list"""
    return CaseFolderAggregator().migrate_from_reports(folders, reports, now)
