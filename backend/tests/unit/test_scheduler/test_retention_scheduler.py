"""Tests for the retention scheduler"""
import asyncio

import pytest

from casecustody.domain.errors import PersistenceError
from casecustody.scheduler.retention_scheduler import RetentionScheduler
from casecustody.utils.logger import get_correlation_id


@pytest.fixture
def in_edit():
    return set()


@pytest.fixture
def scheduler(service, in_edit):
    return RetentionScheduler(service=service, in_edit_ids_provider=lambda: in_edit, interval_seconds=60)


def _deleted_report(service, actor):
    report_id = service.create_report(actor, case_key="7/42").report.id
    service.soft_delete(report_id, actor)
    return report_id


class TestRunOnce:

    def test_run_once_purges_expired(self, scheduler, service, lawyer, clock, store):
        _deleted_report(service, lawyer)
        clock.advance(days=8)

        result = scheduler.run_once()

        assert len(result.hard_deleted_ids) == 1
        assert store.load_reports() == []
        assert scheduler.run_count == 1
        assert scheduler.last_result is result

    def test_reports_in_edit_are_skipped(self, scheduler, service, lawyer, clock, store, in_edit):
        report_id = _deleted_report(service, lawyer)
        in_edit.add(report_id)
        clock.advance(days=8)

        result = scheduler.run_once()

        assert result.deferred_ids == [report_id]
        assert len(store.load_reports()) == 1

        in_edit.clear()
        assert scheduler.run_once().hard_deleted_ids == [report_id]

    def test_each_run_gets_correlation_id(self, scheduler, audit_repo, service, lawyer, clock):
        _deleted_report(service, lawyer)
        clock.advance(days=8)

        scheduler.run_once()

        correlation_id = get_correlation_id()
        assert correlation_id.startswith("COR-")
        assert audit_repo.events[-1].correlation_id == correlation_id

    def test_nothing_to_do(self, scheduler):
        result = scheduler.run_once()
        assert result.kept == []
        assert result.hard_deleted_ids == []


class TestLifecycle:

    def test_start_and_stop(self, scheduler):
        async def _cycle():
            scheduler.start()
            running = scheduler.is_running
            job = scheduler.scheduler.get_job("retention_sweep")
            scheduler.stop()
            return running, job

        running, job = asyncio.run(_cycle())

        assert running is True
        assert job is not None
        assert job.trigger.interval.total_seconds() == 60
        assert scheduler.is_running is False

    def test_start_twice_keeps_one_scheduler(self, scheduler):
        async def _cycle():
            scheduler.start()
            first = scheduler.scheduler
            scheduler.start()
            second = scheduler.scheduler
            scheduler.stop()
            return first, second

        first, second = asyncio.run(_cycle())
        assert first is second

    def test_job_logs_domain_errors(self, scheduler, monkeypatch):
        def _fail(**kwargs):
            raise PersistenceError("store unavailable")

        monkeypatch.setattr(scheduler.service, "run_retention_sweep", _fail)

        asyncio.run(scheduler._sweep_job())

        assert scheduler.run_count == 0


class TestGlobalScheduler:

    def test_start_and_stop_global(self, service, monkeypatch):
        from casecustody.scheduler import retention_scheduler

        monkeypatch.setattr(retention_scheduler, "_scheduler", RetentionScheduler(service=service, interval_seconds=30))

        async def _cycle():
            started = retention_scheduler.start_scheduler()
            running = started.is_running
            retention_scheduler.stop_scheduler()
            return started, running

        started, running = asyncio.run(_cycle())

        assert running is True
        assert started.interval_seconds == 30
        assert retention_scheduler._scheduler is None
