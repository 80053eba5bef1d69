"""
Newsletter double opt-in tests.

Flow: subscribe -> pending + confirmation mail -> confirm -> subscriber +
welcome mail. Unsubscribed addresses are reactivated directly.
"""

from datetime import timedelta

import pytest

from storefront.models import NewsletterSubscriber, PendingSubscriber
from storefront.services import maintenance_service, newsletter_service
from storefront.time_utils import utcnow
from storefront.validation import ConflictError, NotFoundError, ValidationError


def _pending(db_session, email):
    return db_session.query(PendingSubscriber).filter_by(email=email).one()


class TestSubscribe:

    def test_creates_pending_and_sends_confirmation(self, db_session, mail_outbox):
        result = newsletter_service.subscribe("  Ana@Example.com ", name="Ana", source="footer")

        assert result["status"] == "pending"
        pending = _pending(db_session, "ana@example.com")
        assert len(pending.confirmation_token) == 64
        assert pending.source == "footer"
        assert timedelta(hours=23) < pending.expires_at - utcnow() <= timedelta(hours=24)

        assert len(mail_outbox.sent_emails) == 1
        sent = mail_outbox.sent_emails[0]
        assert sent["to"] == "ana@example.com"
        assert f"http://shop.test/confirm-subscription/{pending.confirmation_token}" in sent["body"]

    @pytest.mark.parametrize("email", [None, "", "not-an-email", "a@b"])
    def test_invalid_email(self, db_session, mail_outbox, email):
        with pytest.raises(ValidationError):
            newsletter_service.subscribe(email)
        assert mail_outbox.sent_emails == []

    def test_unknown_source(self, db_session):
        with pytest.raises(ValidationError):
            newsletter_service.subscribe("ana@example.com", source="billboard")

    def test_resubscribe_while_pending_regenerates_token(self, db_session, mail_outbox):
        newsletter_service.subscribe("ana@example.com")
        first_token = _pending(db_session, "ana@example.com").confirmation_token

        result = newsletter_service.subscribe("ana@example.com")

        assert result["status"] == "resent"
        assert _pending(db_session, "ana@example.com").confirmation_token != first_token
        assert db_session.query(PendingSubscriber).count() == 1
        assert len(mail_outbox.sent_emails) == 2

    def test_active_subscriber_conflict(self, db_session, mail_outbox):
        db_session.add(NewsletterSubscriber(email="ana@example.com"))
        db_session.commit()

        with pytest.raises(ConflictError):
            newsletter_service.subscribe("ana@example.com")

    def test_inactive_subscriber_reactivated(self, db_session, mail_outbox):
        db_session.add(NewsletterSubscriber(email="ana@example.com", is_active=False, unsubscribed_at=utcnow()))
        db_session.commit()

        result = newsletter_service.subscribe("ana@example.com")

        assert result["status"] == "resubscribed"
        sub = db_session.query(NewsletterSubscriber).filter_by(email="ana@example.com").one()
        assert sub.is_active is True
        assert sub.unsubscribed_at is None
        assert sub.resubscribed_at is not None
        assert db_session.query(PendingSubscriber).count() == 0
        assert mail_outbox.sent_emails[0]["subject"].startswith("Welcome back")

    def test_expired_pending_purged_on_subscribe(self, db_session, mail_outbox):
        db_session.add(PendingSubscriber(
            email="old@example.com",
            confirmation_token="a" * 64,
            expires_at=utcnow() - timedelta(minutes=1),
        ))
        db_session.commit()

        newsletter_service.subscribe("ana@example.com")

        emails = {p.email for p in db_session.query(PendingSubscriber).all()}
        assert emails == {"ana@example.com"}

    def test_mail_failure_does_not_fail_subscribe(self, db_session, mail_outbox):
        mail_outbox.configure(should_succeed=False)

        result = newsletter_service.subscribe("ana@example.com")

        assert result["status"] == "pending"
        assert _pending(db_session, "ana@example.com")


class TestConfirm:

    def test_confirm_creates_subscriber(self, db_session, mail_outbox):
        newsletter_service.subscribe("ana@example.com", name="Ana")
        token = _pending(db_session, "ana@example.com").confirmation_token

        subscriber = newsletter_service.confirm(token)

        assert subscriber.email == "ana@example.com"
        assert subscriber.name == "Ana"
        assert subscriber.is_active is True
        assert subscriber.preferences == {"promotions": True, "new_products": True, "weekly_newsletter": True}
        assert db_session.query(PendingSubscriber).count() == 0
        assert mail_outbox.sent_emails[-1]["subject"] == "Welcome to Test Store!"

    def test_unknown_token(self, db_session):
        with pytest.raises(ValidationError):
            newsletter_service.confirm("f" * 64)

    def test_expired_token(self, db_session):
        db_session.add(PendingSubscriber(
            email="late@example.com",
            confirmation_token="b" * 64,
            expires_at=utcnow() - timedelta(seconds=1),
        ))
        db_session.commit()

        with pytest.raises(ValidationError):
            newsletter_service.confirm("b" * 64)
        assert db_session.query(NewsletterSubscriber).count() == 0

    def test_already_subscribed(self, db_session):
        db_session.add(NewsletterSubscriber(email="ana@example.com"))
        db_session.add(PendingSubscriber(
            email="ana@example.com",
            confirmation_token="c" * 64,
            expires_at=utcnow() + timedelta(hours=1),
        ))
        db_session.commit()

        with pytest.raises(ConflictError):
            newsletter_service.confirm("c" * 64)
        assert db_session.query(PendingSubscriber).count() == 0

    def test_token_single_use(self, db_session, mail_outbox):
        newsletter_service.subscribe("ana@example.com")
        token = _pending(db_session, "ana@example.com").confirmation_token
        newsletter_service.confirm(token)

        with pytest.raises(ValidationError):
            newsletter_service.confirm(token)


class TestUnsubscribeAndPreferences:

    def test_unsubscribe(self, db_session):
        db_session.add(NewsletterSubscriber(email="ana@example.com"))
        db_session.commit()

        sub = newsletter_service.unsubscribe("ANA@example.com")

        assert sub.is_active is False
        assert sub.unsubscribed_at is not None

    def test_unsubscribe_unknown(self, db_session):
        with pytest.raises(NotFoundError):
            newsletter_service.unsubscribe("ghost@example.com")

    def test_update_preferences(self, db_session):
        db_session.add(NewsletterSubscriber(email="ana@example.com"))
        db_session.commit()

        sub = newsletter_service.update_preferences("ana@example.com", {"promotions": False})

        assert sub.preferences == {"promotions": False, "new_products": True, "weekly_newsletter": True}

    @pytest.mark.parametrize("prefs", [{}, {"spam": True}, {"promotions": "no"}, None])
    def test_bad_preferences(self, db_session, prefs):
        db_session.add(NewsletterSubscriber(email="ana@example.com"))
        db_session.commit()

        with pytest.raises(ValidationError):
            newsletter_service.update_preferences("ana@example.com", prefs)


class TestMaintenance:

    def test_purge_pending(self, db_session):
        db_session.add_all([
            PendingSubscriber(email="old@example.com", confirmation_token="d" * 64,
                              expires_at=utcnow() - timedelta(hours=1)),
            PendingSubscriber(email="new@example.com", confirmation_token="e" * 64,
                              expires_at=utcnow() + timedelta(hours=1)),
        ])
        db_session.commit()

        assert maintenance_service.purge_pending_subscribers() == 1
        assert [p.email for p in db_session.query(PendingSubscriber).all()] == ["new@example.com"]

    def test_stats(self, db_session):
        db_session.add_all([
            NewsletterSubscriber(email="a@example.com"),
            NewsletterSubscriber(email="b@example.com", is_active=False),
            PendingSubscriber(email="c@example.com", confirmation_token="f" * 64,
                              expires_at=utcnow() + timedelta(hours=1)),
        ])
        db_session.commit()

        stats = newsletter_service.subscriber_stats()

        assert stats["total"] == 2
        assert stats["active"] == 1
        assert stats["inactive"] == 1
        assert stats["pending"] == 1
        assert stats["new_last_30_days"] == 2


class TestSubscriberAdmin:

    def test_add_subscriber_skips_confirmation(self, db_session, mail_outbox):
        subscriber = newsletter_service.add_subscriber(
            " VIP@Example.com ", "Vip", {"promotions": False},
        )

        assert subscriber.email == "vip@example.com"
        assert subscriber.is_active
        assert subscriber.pref_promotions is False
        assert mail_outbox.sent_emails == []

    def test_add_existing_conflicts(self, db_session):
        db_session.add(NewsletterSubscriber(email="a@example.com"))
        db_session.commit()

        with pytest.raises(ConflictError):
            newsletter_service.add_subscriber("a@example.com")

    def test_add_bad_preferences(self, db_session):
        with pytest.raises(ValidationError):
            newsletter_service.add_subscriber("a@example.com", preferences={"sms": True})

    def test_status_toggle_stamps_unsubscribed_at(self, db_session):
        subscriber = newsletter_service.add_subscriber("a@example.com")

        off = newsletter_service.set_subscriber_status(subscriber.id, False)
        assert off.is_active is False
        assert off.unsubscribed_at is not None

        on = newsletter_service.set_subscriber_status(subscriber.id, True)
        assert on.is_active is True
        assert on.unsubscribed_at is None

    def test_status_requires_bool(self, db_session):
        subscriber = newsletter_service.add_subscriber("a@example.com")
        with pytest.raises(ValidationError):
            newsletter_service.set_subscriber_status(subscriber.id, "no")

    def test_delete_and_bulk_delete(self, db_session):
        a = newsletter_service.add_subscriber("a@example.com")
        b = newsletter_service.add_subscriber("b@example.com")
        c = newsletter_service.add_subscriber("c@example.com")

        newsletter_service.delete_subscriber(a.id)
        assert newsletter_service.bulk_delete_subscribers([b.id, c.id, 9999]) == 2
        assert db_session.query(NewsletterSubscriber).count() == 0

        with pytest.raises(NotFoundError):
            newsletter_service.delete_subscriber(a.id)


class TestBroadcast:

    @pytest.fixture
    def audience(self, db_session):
        db_session.add_all([
            NewsletterSubscriber(email="a@example.com", pref_promotions=True),
            NewsletterSubscriber(email="b@example.com", pref_promotions=False),
            NewsletterSubscriber(email="gone@example.com", is_active=False),
        ])
        db_session.commit()

    def test_sends_to_active_subscribers(self, db_session, mail_outbox, audience):
        result = newsletter_service.send_newsletter("June news", "New arrivals\nSee you soon")

        assert result == {"total_recipients": 2, "success_count": 2, "error_count": 0, "errors": []}
        assert sorted(m["to"] for m in mail_outbox.sent_emails) == ["a@example.com", "b@example.com"]

        message = mail_outbox.sent_emails[0]
        assert "http://shop.test/unsubscribe?email=a%40example.com" in message["body"]
        assert "<p>New arrivals</p>" in message["html_body"]

        a = db_session.query(NewsletterSubscriber).filter_by(email="a@example.com").one()
        assert a.email_count == 1
        assert a.last_email_sent is not None

    def test_content_is_escaped_in_html(self, db_session, mail_outbox, audience):
        newsletter_service.send_newsletter("Hi", "<script>x</script>", audience="inactive")

        assert "<script>" not in mail_outbox.sent_emails[0]["html_body"]
        assert "&lt;script&gt;" in mail_outbox.sent_emails[0]["html_body"]

    def test_topic_filter(self, db_session, mail_outbox, audience):
        result = newsletter_service.send_newsletter("Deals", "20% off", topic="promotions")

        assert result["total_recipients"] == 1
        assert mail_outbox.sent_emails[0]["to"] == "a@example.com"

    def test_one_failure_does_not_stop_the_rest(self, db_session, mail_outbox, audience):
        mail_outbox.configure(fail_for={"a@example.com"}, failure_reason="mailbox full")

        result = newsletter_service.send_newsletter("News", "Body", audience="all")

        assert result["total_recipients"] == 3
        assert result["success_count"] == 2
        assert result["errors"] == [{"email": "a@example.com", "error": "mailbox full"}]

        a = db_session.query(NewsletterSubscriber).filter_by(email="a@example.com").one()
        b = db_session.query(NewsletterSubscriber).filter_by(email="b@example.com").one()
        assert a.email_count == 0
        assert b.email_count == 1

    def test_no_recipients(self, db_session, mail_outbox):
        with pytest.raises(ValidationError, match="No subscribers"):
            newsletter_service.send_newsletter("Hi", "Body")

    @pytest.mark.parametrize(
        "subject,content,audience,topic",
        [
            ("", "Body", "active", None),
            ("Hi", "  ", "active", None),
            ("Hi", "Body", "everyone", None),
            ("Hi", "Body", "active", "sms"),
        ],
    )
    def test_rejects_bad_input(self, db_session, subject, content, audience, topic):
        with pytest.raises(ValidationError):
            newsletter_service.send_newsletter(subject, content, audience=audience, topic=topic)

    def test_send_route(self, client, admin_headers, mail_outbox, audience):
        resp = client.post(
            "/api/admin/newsletter/send",
            json={"subject": "Hello", "content": "Body", "audience": "all"},
            headers=admin_headers,
        )

        assert resp.status_code == 200
        assert resp.get_json()["success_count"] == 3

    def test_subscriber_routes(self, client, admin_headers, db_session):
        created = client.post(
            "/api/admin/newsletter/subscribers",
            json={"email": "new@example.com", "name": "New"},
            headers=admin_headers,
        )
        assert created.status_code == 201
        subscriber_id = created.get_json()["id"]

        status = client.patch(
            f"/api/admin/newsletter/subscribers/{subscriber_id}/status",
            json={"is_active": False},
            headers=admin_headers,
        )
        assert status.get_json()["is_active"] is False

        bulk = client.post(
            "/api/admin/newsletter/subscribers/bulk-delete",
            json={"ids": [subscriber_id]},
            headers=admin_headers,
        )
        assert bulk.get_json() == {"deleted": 1}

        missing = client.delete(f"/api/admin/newsletter/subscribers/{subscriber_id}", headers=admin_headers)
        assert missing.status_code == 404
