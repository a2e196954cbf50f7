"""Report Store - Persistence of the live report list and case folders"""
from abc import ABC, abstractmethod
from typing import Dict, List, Optional
from pymongo import ReplaceOne
from pymongo.collection import Collection
from pymongo.errors import PyMongoError

from .mongo_client import get_collection, REPORTS_COLLECTION, CASE_FOLDERS_COLLECTION
from ..config.settings import settings
from ..domain.models import Report, CaseFolder
from ..domain.errors import PersistenceError
from ..engine.case_key import normalize_case_key
from ..utils.logger import get_logger

logger = get_logger(__name__)


class ReportStore(ABC):
    """
    Storage collaborator for reports and case folders.

    Reports are saved with whole-collection replace semantics; callers
    serialize calls. Case folders are keyed by normalized case key.
    """

    @abstractmethod
    def load_reports(self) -> List[Report]:
        """Load the live report list"""

    @abstractmethod
    def save_reports(self, reports: List[Report]) -> None:
        """Replace the live report list"""

    @abstractmethod
    def load_case_folder(self, case_key: str) -> Optional[CaseFolder]:
        """Load one case folder, if it exists"""

    @abstractmethod
    def save_case_folder(self, case_key: str, folder: CaseFolder) -> None:
        """Create or replace one case folder"""

    @abstractmethod
    def load_case_folders(self) -> Dict[str, CaseFolder]:
        """Load every case folder keyed by case key"""

    @abstractmethod
    def delete_case_folder(self, case_key: str) -> bool:
        """Remove a case folder; returns whether it existed"""


class MongoReportStore(ReportStore):
    """ReportStore backed by MongoDB collections"""

    def __init__(self):
        self._reports: Collection = get_collection(REPORTS_COLLECTION)
        self._case_folders: Collection = get_collection(CASE_FOLDERS_COLLECTION)

    # =========================================================================
    # Reports
    # =========================================================================

    def load_reports(self) -> List[Report]:
        reports = []
        for doc in self._reports.find({}).sort("created_at", 1):
            doc.pop("_id", None)
            reports.append(Report.model_validate(doc))
        return reports

    def save_reports(self, reports: List[Report]) -> None:
        """Upsert every report and remove the ones no longer listed"""
        operations = []
        for report in reports:
            # Keep datetimes native so MongoDB can sort and range-query them
            doc = report.model_dump()
            doc["_id"] = report.id
            operations.append(ReplaceOne({"_id": report.id}, doc, upsert=True))

        ids = [report.id for report in reports]
        try:
            if operations:
                self._reports.bulk_write(operations, ordered=False)
            removed = self._reports.delete_many({"_id": {"$nin": ids}})
        except PyMongoError as e:
            logger.error(f"Failed to save reports: {e}")
            raise PersistenceError("Failed to save reports", details={"error": str(e)})

        logger.debug(
            f"Saved {len(ids)} reports, removed {removed.deleted_count}",
            extra={"action": "save_reports"}
        )

    # =========================================================================
    # Case Folders
    # =========================================================================

    def load_case_folder(self, case_key: str) -> Optional[CaseFolder]:
        key = normalize_case_key(case_key)
        if not key:
            return None
        doc = self._case_folders.find_one({"_id": key})
        if doc:
            doc.pop("_id", None)
            return CaseFolder.model_validate(doc)
        return None

    def save_case_folder(self, case_key: str, folder: CaseFolder) -> None:
        key = normalize_case_key(case_key)
        doc = folder.model_dump()
        doc["_id"] = key
        try:
            self._case_folders.replace_one({"_id": key}, doc, upsert=True)
        except PyMongoError as e:
            logger.error(f"Failed to save case folder {key}: {e}", extra={"case_key": key})
            raise PersistenceError(f"Failed to save case folder {key}", details={"case_key": key})

    def load_case_folders(self) -> Dict[str, CaseFolder]:
        folders: Dict[str, CaseFolder] = {}
        for doc in self._case_folders.find({}):
            key = doc.pop("_id", None) or doc.get("case_key")
            folders[key] = CaseFolder.model_validate(doc)
        return folders

    def delete_case_folder(self, case_key: str) -> bool:
        # Legacy documents may still be stored under the raw key
        keys = list(dict.fromkeys([normalize_case_key(case_key), case_key]))
        result = self._case_folders.delete_many({"_id": {"$in": keys}})
        return result.deleted_count > 0


class InMemoryReportStore(ReportStore):
    """ReportStore kept in process memory (development and tests)"""

    def __init__(
        self,
        reports: Optional[List[Report]] = None,
        folders: Optional[Dict[str, CaseFolder]] = None
    ):
        self._reports: List[Report] = [r.model_copy(deep=True) for r in reports or []]
        self._folders: Dict[str, CaseFolder] = {
            key: folder.model_copy(deep=True) for key, folder in (folders or {}).items()
        }

    def load_reports(self) -> List[Report]:
        return [r.model_copy(deep=True) for r in self._reports]

    def save_reports(self, reports: List[Report]) -> None:
        self._reports = [r.model_copy(deep=True) for r in reports]

    def load_case_folder(self, case_key: str) -> Optional[CaseFolder]:
        folder = self._folders.get(normalize_case_key(case_key))
        return folder.model_copy(deep=True) if folder is not None else None

    def save_case_folder(self, case_key: str, folder: CaseFolder) -> None:
        self._folders[normalize_case_key(case_key)] = folder.model_copy(deep=True)

    def load_case_folders(self) -> Dict[str, CaseFolder]:
        return {key: folder.model_copy(deep=True) for key, folder in self._folders.items()}

    def delete_case_folder(self, case_key: str) -> bool:
        removed = self._folders.pop(case_key, None)
        removed = self._folders.pop(normalize_case_key(case_key), None) or removed
        return removed is not None


def get_report_store() -> ReportStore:
    """Build the store selected by settings.storage_backend"""
    if settings.uses_memory_store:
        if settings.is_production:
            logger.warning("In-memory report store configured in production; data will not persist")
        else:
            logger.info("Using in-memory report store")
        return InMemoryReportStore()
    return MongoReportStore()
