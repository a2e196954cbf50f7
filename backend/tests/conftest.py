"""
Pytest Configuration and Fixtures

Shared fixtures for all tests. Everything runs against the in-memory store
with an injected clock; no MongoDB is needed.
"""
from datetime import datetime, timedelta, timezone

import pytest

from casecustody.domain.enums import ReportStatus, UserRole
from casecustody.domain.models import ActorContext, CaseFolder, Report
from casecustody.engine.audit_writer import AuditWriter
from casecustody.engine.retention import RetentionPolicy
from casecustody.engine.state_machine import ReportStateMachine
from casecustody.repositories.audit_repo import InMemoryAuditRepository
from casecustody.repositories.report_store import InMemoryReportStore
from casecustody.services.report_service import ReportCustodyService

T0 = datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc)


class FakeClock:
    """Settable clock for services and schedulers"""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def t0() -> datetime:
    return T0


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(T0)


@pytest.fixture
def lawyer() -> ActorContext:
    return ActorContext(user_id="u-lawyer", display_name="Dana Levi", role=UserRole.LAWYER)


@pytest.fixture
def admin() -> ActorContext:
    return ActorContext(user_id="u-admin", display_name="Office Admin", role=UserRole.ADMIN)


@pytest.fixture
def make_report():
    """Factory for reports in case 7/42"""
    counter = {"n": 0}

    def _make(**overrides) -> Report:
        counter["n"] += 1
        data = {
            "id": f"RPT-{counter['n']}",
            "case_key": "7/42",
            "status": ReportStatus.DRAFT,
            "created_at": T0,
            "updated_at": T0,
        }
        data.update(overrides)
        return Report(**data)

    return _make


@pytest.fixture
def make_folder():
    def _make(case_key: str = "7/42", **overrides) -> CaseFolder:
        data = {"case_key": case_key, "created_at": T0, "updated_at": T0}
        data.update(overrides)
        return CaseFolder(**data)

    return _make


@pytest.fixture
def state_machine() -> ReportStateMachine:
    return ReportStateMachine(auto_lock_days=35)


@pytest.fixture
def store() -> InMemoryReportStore:
    return InMemoryReportStore()


@pytest.fixture
def audit_repo() -> InMemoryAuditRepository:
    return InMemoryAuditRepository()


@pytest.fixture
def service(store, audit_repo, clock) -> ReportCustodyService:
    return ReportCustodyService(
        store=store,
        audit_writer=AuditWriter(audit_repo),
        state_machine=ReportStateMachine(auto_lock_days=35),
        retention_policy=RetentionPolicy(
            soft_delete_retention_days=7,
            archive_after_hours=48,
            sent_retention_days=30,
            auto_lock_days=35,
        ),
        clock=clock,
    )
