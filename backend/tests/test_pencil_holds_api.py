"""Tests for the pencil hold HTTP routes and the error mapping.

Covers:
- Create → confirm → approve through the API, event published
- Cancel twice → ALREADY_CANCELLED
- Conflicts → 409 with the conflicting events listed
- Overdue hold → 410 on confirm and extend
- Listing, my-holds, stats, events with holds
- Manual expiry sweep endpoint
"""
from datetime import timedelta

from app.services import pencil_hold_service
from app.utils.time_utils import utcnow
from tests.conftest import create_test_category, create_test_event, create_test_user


def _setup(client):
    organizer = create_test_user(client, name="Organizer")
    admin = create_test_user(client, name="Admin", role="admin")
    category = create_test_category(client, "Music")
    event = create_test_event(client, organizer["user_id"], category["category_id"], title="Jazz Night")
    return organizer, admin, category, event


def _hold(client, event_id, user_id, **extra):
    return client.post("/api/pencil-holds/", json={"event_id": event_id, "user_id": user_id, **extra})


class TestLifecycle:

    def test_full_approval_pipeline(self, client):
        organizer, admin, _, event = _setup(client)

        resp = _hold(client, event["event_id"], organizer["user_id"], notes="Main hall", priority=2)
        assert resp.status_code == 201
        hold = resp.json()
        assert hold["status"] == "pending"
        assert hold["effective_status"] == "pending"
        assert hold["is_expired"] is False
        assert hold["days_until_expiration"] == 2

        held_event = client.get(f"/api/events/{event['event_id']}").json()
        assert held_event["status"] == "pencil_hold"
        assert held_event["pencil_hold_count"] == 1
        assert held_event["pencil_hold_info"]["pencil_hold_id"] == hold["hold_id"]

        resp = client.patch(f"/api/pencil-holds/{hold['hold_id']}/confirm", json={"user_id": organizer["user_id"]})
        assert resp.status_code == 200
        assert resp.json()["status"] == "confirmed"
        assert client.get(f"/api/events/{event['event_id']}").json()["status"] == "pencil_hold_confirmed"

        resp = client.patch(f"/api/pencil-holds/{hold['hold_id']}/approve", json={"approver_id": admin["user_id"]})
        assert resp.status_code == 200
        assert resp.json()["status"] == "converted"
        assert resp.json()["approved_by"] == admin["user_id"]

        published = client.get(f"/api/events/{event['event_id']}").json()
        assert published["status"] == "published"
        assert published["approved_by"] == admin["user_id"]
        assert published["pencil_hold_count"] == 0

    def test_approve_by_organizer_forbidden(self, client):
        organizer, _, _, event = _setup(client)
        hold = _hold(client, event["event_id"], organizer["user_id"]).json()
        client.patch(f"/api/pencil-holds/{hold['hold_id']}/confirm", json={"user_id": organizer["user_id"]})
        resp = client.patch(f"/api/pencil-holds/{hold['hold_id']}/approve", json={"approver_id": organizer["user_id"]})
        assert resp.status_code == 403

    def test_approve_pending_is_invalid_transition(self, client):
        organizer, admin, _, event = _setup(client)
        hold = _hold(client, event["event_id"], organizer["user_id"]).json()
        resp = client.patch(f"/api/pencil-holds/{hold['hold_id']}/approve", json={"approver_id": admin["user_id"]})
        assert resp.status_code == 409
        body = resp.json()["detail"]
        assert body["error"] == "INVALID_STATE_TRANSITION"
        assert body["hold_status"] == "pending"

    def test_cancel_twice(self, client):
        organizer, _, _, event = _setup(client)
        hold = _hold(client, event["event_id"], organizer["user_id"]).json()
        url = f"/api/pencil-holds/{hold['hold_id']}/cancel"

        resp = client.patch(url, json={"reason": "Weather", "actor_user_id": organizer["user_id"]})
        assert resp.status_code == 200
        assert resp.json()["cancellation_reason"] == "Weather"
        assert client.get(f"/api/events/{event['event_id']}").json()["status"] == "draft"

        resp = client.patch(url, json={"reason": "Again"})
        assert resp.status_code == 409
        assert resp.json()["detail"]["error"] == "ALREADY_CANCELLED"

    def test_cancel_requires_reason(self, client):
        organizer, _, _, event = _setup(client)
        hold = _hold(client, event["event_id"], organizer["user_id"]).json()
        resp = client.patch(f"/api/pencil-holds/{hold['hold_id']}/cancel", json={"reason": ""})
        assert resp.status_code == 422

    def test_extend(self, client):
        organizer, _, _, event = _setup(client)
        hold = _hold(client, event["event_id"], organizer["user_id"]).json()
        resp = client.patch(f"/api/pencil-holds/{hold['hold_id']}/extend", json={"days": 5})
        assert resp.status_code == 200
        assert resp.json()["days_until_expiration"] == 7

    def test_extend_out_of_range(self, client):
        organizer, _, _, event = _setup(client)
        hold = _hold(client, event["event_id"], organizer["user_id"]).json()
        resp = client.patch(f"/api/pencil-holds/{hold['hold_id']}/extend", json={"days": 31})
        assert resp.status_code == 422

    def test_update(self, client):
        organizer, _, _, event = _setup(client)
        hold = _hold(client, event["event_id"], organizer["user_id"]).json()
        resp = client.put(
            f"/api/pencil-holds/{hold['hold_id']}",
            json={"user_id": organizer["user_id"], "notes": "Bring chairs", "priority": 4},
        )
        assert resp.status_code == 200
        assert resp.json()["notes"] == "Bring chairs"
        assert resp.json()["priority"] == 4


class TestCreateErrors:

    def test_duplicate(self, client):
        organizer, _, _, event = _setup(client)
        _hold(client, event["event_id"], organizer["user_id"])
        resp = _hold(client, event["event_id"], organizer["user_id"])
        assert resp.status_code == 409
        assert resp.json()["detail"]["error"] == "DUPLICATE_ERROR"

    def test_schedule_conflict(self, client):
        organizer, _, category, event = _setup(client)
        rival = create_test_event(
            client, organizer["user_id"], category["category_id"], title="Late Set", start="17:30", end="19:00",
            location={"name": "Park Pavilion", "address": "2 Park Road", "city": "Auckland"},
        )
        resp = _hold(client, rival["event_id"], organizer["user_id"])
        assert resp.status_code == 409
        body = resp.json()["detail"]
        assert body["error"] == "SCHEDULE_CONFLICT"
        assert [c["event_id"] for c in body["conflicts"]] == [event["event_id"]]

    def test_past_expiry(self, client):
        organizer, _, _, event = _setup(client)
        resp = _hold(
            client, event["event_id"], organizer["user_id"],
            expires_at=(utcnow() - timedelta(hours=1)).isoformat(),
        )
        assert resp.status_code == 422
        assert resp.json()["detail"]["error"] == "VALIDATION_ERROR"

    def test_unknown_event(self, client):
        organizer, _, _, _ = _setup(client)
        resp = _hold(client, "missing", organizer["user_id"])
        assert resp.status_code == 404

    def test_full_event(self, client):
        organizer, _, category, _ = _setup(client)
        event = create_test_event(
            client, organizer["user_id"], category["category_id"], title="Tiny Gig", capacity=1,
            location={"name": "Back Room", "address": "3 Lane", "city": "Hamilton"},
        )
        client.put(
            f"/api/events/{event['event_id']}?actor_user_id={organizer['user_id']}",
            json={"registration_count": 1, "version": 1},
        )
        resp = _hold(client, event["event_id"], organizer["user_id"])
        assert resp.status_code == 409
        assert resp.json()["detail"]["error"] == "CAPACITY_EXCEEDED"


class TestExpiredHolds:

    def _overdue_hold(self, client, db):
        organizer, admin, category, event = _setup(client)
        hold = pencil_hold_service.create_pencil_hold(
            db, event["event_id"], organizer["user_id"], now=utcnow() - timedelta(days=3),
        )
        return organizer, event, hold.hold_id

    def test_confirm_overdue_is_gone(self, client, db):
        organizer, _, hold_id = self._overdue_hold(client, db)
        resp = client.patch(f"/api/pencil-holds/{hold_id}/confirm", json={"user_id": organizer["user_id"]})
        assert resp.status_code == 410
        assert resp.json()["detail"]["error"] == "HOLD_EXPIRED"

    def test_extend_overdue_is_gone(self, client, db):
        _, _, hold_id = self._overdue_hold(client, db)
        resp = client.patch(f"/api/pencil-holds/{hold_id}/extend", json={"days": 3})
        assert resp.status_code == 410

    def test_read_shows_effective_status(self, client, db):
        _, _, hold_id = self._overdue_hold(client, db)
        data = client.get(f"/api/pencil-holds/{hold_id}").json()
        assert data["status"] == "pending"
        assert data["effective_status"] == "expired"
        assert data["is_expired"] is True

    def test_sweep_endpoint(self, client, db):
        _, event, hold_id = self._overdue_hold(client, db)
        resp = client.post("/api/pencil-holds/expired")
        assert resp.status_code == 200
        assert resp.json() == {"expired_count": 1}
        assert client.get(f"/api/pencil-holds/{hold_id}").json()["status"] == "expired"
        assert client.get(f"/api/events/{event['event_id']}").json()["status"] == "draft"
        assert client.post("/api/pencil-holds/expired").json() == {"expired_count": 0}


class TestReads:

    def test_listing_routes(self, client):
        organizer, _, category, event = _setup(client)
        other = create_test_user(client, name="Other")
        mine = _hold(client, event["event_id"], organizer["user_id"], notes="Stage left").json()
        _hold(client, event["event_id"], other["user_id"], notes="Stage right", priority=5)

        page = client.get("/api/pencil-holds/", params={"limit": 1}).json()
        assert page["pagination"]["total"] == 2
        assert page["pagination"]["pages"] == 2
        assert page["pencil_holds"][0]["priority"] == 5

        my_holds = client.get("/api/pencil-holds/my-holds", params={"user_id": organizer["user_id"]}).json()
        assert [h["hold_id"] for h in my_holds["pencil_holds"]] == [mine["hold_id"]]

        assert client.get("/api/pencil-holds/", params={"search": "left"}).json()["pagination"]["total"] == 1
        assert client.get("/api/pencil-holds/", params={"status": "bogus"}).status_code == 422

        stats = client.get("/api/pencil-holds/stats").json()
        assert stats["total"] == 2
        assert stats["pending"] == 2

        events = client.get("/api/pencil-holds/events").json()
        assert [e["event_id"] for e in events] == [event["event_id"]]
        assert events[0]["pencil_hold_info"]["priority"] == 5

    def test_get_unknown_hold(self, client):
        resp = client.get("/api/pencil-holds/missing")
        assert resp.status_code == 404
        assert resp.json()["detail"]["error"] == "NOT_FOUND"
