"""Tests for the expiry sweep.

Covers:
- Expiry exactly at the deadline boundary
- Idempotence of repeated passes
- Holds that moved concurrently are skipped, not failed
- The background sweeper and its one-shot runner
"""
from datetime import timedelta

import pytest

from app.jobs import expiry_sweep as sweep_job
from app.models.event import Event, EventStatus
from app.models.hold_transition import HoldTransition, HoldAction
from app.models.pencil_hold import PencilHold, HoldStatus
from app.services import pencil_hold_service as svc
from app.services.expiry_sweep import ExpirySweeper, run_expiry_sweep
from app.utils.time_utils import utcnow
from tests.conftest import EVENT_DAY, local, make_category, make_event, make_user

T0 = local(EVENT_DAY, "09:00") - timedelta(days=30)


@pytest.fixture
def held(db):
    organizer = make_user(db)
    event = make_event(db, organizer, make_category(db))
    hold = svc.create_pencil_hold(db, event.event_id, organizer.user_id, now=T0)
    return organizer, event, hold


class TestRunExpirySweep:

    def test_not_yet_due(self, db, held):
        _, _, hold = held
        assert run_expiry_sweep(db, now=T0 + timedelta(hours=47, minutes=59)) == {"expired_count": 0}
        assert svc.get_pencil_hold(db, hold.hold_id).status == HoldStatus.pending

    def test_overdue_hold_expired(self, db, held):
        _, event, hold = held
        due = T0 + timedelta(hours=48, minutes=1)
        assert run_expiry_sweep(db, now=due) == {"expired_count": 1}

        db.expire_all()
        expired = db.get(PencilHold, hold.hold_id)
        assert expired.status == HoldStatus.expired
        assert expired.expired_at is not None

        stored = db.get(Event, event.event_id)
        assert stored.status == EventStatus.draft
        assert stored.pencil_hold_count == 0
        assert stored.pencil_hold_info is None

        row = db.query(HoldTransition).filter(HoldTransition.action == HoldAction.expire).one()
        assert row.actor_user_id is None
        assert row.from_status == "pending"

    def test_deadline_itself_is_due(self, db, held):
        assert run_expiry_sweep(db, now=T0 + timedelta(hours=48)) == {"expired_count": 1}

    def test_idempotent(self, db, held):
        due = T0 + timedelta(hours=49)
        assert run_expiry_sweep(db, now=due)["expired_count"] == 1
        assert run_expiry_sweep(db, now=due)["expired_count"] == 0
        assert db.query(HoldTransition).filter(HoldTransition.action == HoldAction.expire).count() == 1

    def test_confirmed_holds_never_expire(self, db, held):
        organizer, _, hold = held
        svc.confirm_pencil_hold(db, hold.hold_id, organizer.user_id, now=T0)
        assert run_expiry_sweep(db, now=T0 + timedelta(days=30))["expired_count"] == 0
        assert svc.get_pencil_hold(db, hold.hold_id).status == HoldStatus.confirmed

    def test_hold_cancelled_concurrently_is_skipped(self, db, held, session_factory):
        _, _, hold = held
        due = T0 + timedelta(hours=49)

        stale = session_factory()
        other = session_factory()
        try:
            assert stale.get(PencilHold, hold.hold_id).event.pencil_hold_count == 1
            svc.cancel_pencil_hold(other, hold.hold_id, reason="Withdrawn", now=due)
            assert svc.expire_pencil_hold(stale, hold.hold_id, now=due) is False
        finally:
            stale.close()
            other.close()

        db.expire_all()
        assert db.get(PencilHold, hold.hold_id).status == HoldStatus.cancelled

    def test_only_overdue_holds_expire(self, db, held):
        organizer, _, _ = held
        later_event = make_event(db, organizer, make_category(db), day=EVENT_DAY + timedelta(days=7))
        later = svc.create_pencil_hold(db, later_event.event_id, organizer.user_id, now=T0 + timedelta(hours=24))

        assert run_expiry_sweep(db, now=T0 + timedelta(hours=49))["expired_count"] == 1
        assert svc.get_pencil_hold(db, later.hold_id).status == HoldStatus.pending


class TestExpirySweeper:

    def test_run_once_uses_its_own_session(self, db, session_factory):
        organizer = make_user(db)
        event = make_event(db, organizer, make_category(db))
        hold = svc.create_pencil_hold(db, event.event_id, organizer.user_id, now=utcnow() - timedelta(days=3))

        sweeper = ExpirySweeper(session_factory=session_factory, interval_seconds=60)
        assert sweeper.run_once() == 1
        assert sweeper.run_once() == 0

        db.expire_all()
        assert db.get(PencilHold, hold.hold_id).status == HoldStatus.expired

    def test_start_and_stop(self, session_factory):
        sweeper = ExpirySweeper(session_factory=session_factory, interval_seconds=3600)
        sweeper.start()
        assert sweeper.running
        sweeper.stop(timeout=5)
        assert not sweeper.running
        assert sweeper.failures == 0

    def test_job_once(self, monkeypatch, session_factory):
        calls = []

        class _Sweeper(ExpirySweeper):
            def run_once(self):
                calls.append(self.interval_seconds)
                return 0

        monkeypatch.setattr(sweep_job, "ExpirySweeper", lambda interval_seconds: _Sweeper(session_factory, interval_seconds))
        assert sweep_job.main(["--once", "--interval", "30"]) == 0
        assert calls == [30]
