"""
Announcement tests.
"""

from datetime import timedelta

import pytest

from storefront.models import Announcement
from storefront.services import announcement_service
from storefront.time_utils import utcnow
from storefront.validation import NotFoundError, ValidationError


@pytest.fixture
def make_announcement(db_session):
    counter = {"n": 0}

    def _make(**fields):
        counter["n"] += 1
        patch = {
            "title": f"Notice {counter['n']}",
            "content": "Store news",
            "starts_at": utcnow() - timedelta(hours=1),
            "ends_at": utcnow() + timedelta(days=3),
        }
        patch.update(fields)
        return announcement_service.create_announcement(patch=patch)

    return _make


class TestPublicFeed:

    def test_orders_by_priority_then_newest(self, db_session, make_announcement):
        low = make_announcement(priority="low")
        urgent = make_announcement(priority="urgent")
        older_high = make_announcement(priority="high")
        newer_high = make_announcement(priority="high")

        ids = [a["id"] for a in announcement_service.list_active()]

        assert ids[0] == urgent.id
        assert set(ids[1:3]) == {older_high.id, newer_high.id}
        assert ids[3] == low.id

    def test_hides_inactive_and_out_of_window(self, db_session, make_announcement):
        live = make_announcement()
        make_announcement(is_active=False)
        make_announcement(starts_at=utcnow() + timedelta(days=1), ends_at=utcnow() + timedelta(days=2))
        make_announcement(starts_at=utcnow() - timedelta(days=3), ends_at=utcnow() - timedelta(days=1))

        assert [a["id"] for a in announcement_service.list_active()] == [live.id]

    def test_location_and_audience_filters(self, db_session, make_announcement):
        everyone = make_announcement(display_location="top")
        members = make_announcement(display_location="top", target_audience="registered")
        make_announcement(display_location="top", target_audience="guests")
        make_announcement(display_location="modal")

        ids = {a["id"] for a in announcement_service.list_active(location="top", audience="registered")}

        assert ids == {everyone.id, members.id}

    def test_bad_filter(self, db_session):
        with pytest.raises(ValidationError):
            announcement_service.list_active(location="footer")

    def test_view_and_click_counters(self, db_session, make_announcement):
        notice = make_announcement()

        announcement_service.record_view(notice.id)
        announcement_service.record_view(notice.id)
        announcement_service.record_click(notice.id)

        db_session.refresh(notice)
        assert (notice.views, notice.clicks) == (2, 1)

    def test_counter_unknown_id(self, db_session):
        with pytest.raises(NotFoundError):
            announcement_service.record_click(999)

    def test_public_get_hides_inactive(self, db_session, make_announcement):
        notice = make_announcement(is_active=False)
        with pytest.raises(NotFoundError):
            announcement_service.get_public_announcement(notice.id)


class TestAnnouncementAdmin:

    def test_create_defaults(self, db_session, admin):
        notice = announcement_service.create_announcement(
            patch={"title": "Hi", "content": "Hello", "ends_at": utcnow() + timedelta(days=1)},
            actor_id=admin.id,
        )

        assert notice.priority == "medium"
        assert notice.priority_rank == 1
        assert notice.images == []
        assert notice.is_currently_active()

    @pytest.mark.parametrize(
        "patch",
        [
            {"title": "x"},
            {"content": "y" * 5001},
            {"priority": "critical"},
            {"announcement_type": "banner"},
            {"images": [{"alt": "no url"}]},
            {"ends_at": utcnow() - timedelta(days=1)},
        ],
    )
    def test_create_rejects(self, db_session, patch):
        base = {"title": "Valid", "content": "Body", "ends_at": utcnow() + timedelta(days=1)}
        base.update(patch)
        with pytest.raises(ValidationError):
            announcement_service.create_announcement(patch=base)

    def test_update_keeps_rank_in_step(self, db_session, make_announcement):
        notice = make_announcement(priority="low")

        updated = announcement_service.update_announcement(announcement_id=notice.id, patch={"priority": "urgent"})

        assert updated.priority_rank == 3

    def test_update_window_checked_against_stored_start(self, db_session, make_announcement):
        notice = make_announcement()
        with pytest.raises(ValidationError):
            announcement_service.update_announcement(
                announcement_id=notice.id,
                patch={"ends_at": notice.starts_at - timedelta(minutes=1)},
            )

    def test_list_filters(self, db_session, make_announcement):
        make_announcement(title="Holiday hours", announcement_type="warning")
        make_announcement(title="New arrivals", announcement_type="promotion", is_active=False)

        assert announcement_service.list_announcements(search="holiday")["pagination"]["total"] == 1
        assert announcement_service.list_announcements(announcement_type="promotion")["count"] == 1
        assert announcement_service.list_announcements(is_active=True)["count"] == 1

    def test_bulk_delete(self, db_session, make_announcement):
        keep = make_announcement()
        drop = [make_announcement().id, make_announcement().id]

        assert announcement_service.bulk_delete_announcements(drop + [drop[0]]) == 2
        assert [a.id for a in db_session.query(Announcement).all()] == [keep.id]

    @pytest.mark.parametrize("ids", [None, [], ["a"], [0], "1,2"])
    def test_bulk_delete_rejects(self, db_session, ids):
        with pytest.raises(ValidationError):
            announcement_service.bulk_delete_announcements(ids)

    def test_toggle(self, db_session, make_announcement):
        notice = make_announcement()
        assert announcement_service.toggle_announcement(notice.id).is_active is False


class TestAnnouncementRoutes:

    def test_public_feed_and_counters(self, client, make_announcement):
        notice = make_announcement()

        feed = client.get("/api/announcements/active")
        assert [a["id"] for a in feed.get_json()["items"]] == [notice.id]

        assert client.post(f"/api/announcements/{notice.id}/view").status_code == 200
        assert client.post("/api/announcements/999/click").status_code == 404

    def test_admin_crud(self, client, admin_headers):
        created = client.post(
            "/api/announcements",
            json={
                "title": "Closed Monday",
                "content": "We reopen Tuesday.",
                "priority": "high",
                "ends_at": (utcnow() + timedelta(days=2)).isoformat() + "Z",
            },
            headers=admin_headers,
        )
        assert created.status_code == 201
        notice_id = created.get_json()["id"]

        updated = client.put(f"/api/announcements/{notice_id}", json={"title": "Closed Monday only"},
                             headers=admin_headers)
        assert updated.get_json()["title"] == "Closed Monday only"

        listed = client.get("/api/announcements/manage?is_active=true", headers=admin_headers)
        assert listed.get_json()["pagination"]["total"] == 1

        bulk = client.post("/api/announcements/bulk-delete", json={"ids": [notice_id]}, headers=admin_headers)
        assert bulk.get_json() == {"deleted": 1}

    def test_admin_rejects_counters(self, client, admin_headers):
        resp = client.post(
            "/api/announcements",
            json={"title": "Hi", "content": "x", "ends_at": "2030-01-01", "views": 100},
            headers=admin_headers,
        )
        assert resp.status_code == 400
