"""
Flask CLI command tests.
"""

from datetime import timedelta

from storefront.models import Category, PendingSubscriber, User
from storefront.time_utils import utcnow


class TestSystemCommands:

    def test_init_is_idempotent(self, app, db_session):
        runner = app.test_cli_runner()

        first = runner.invoke(args=["system", "init", "--admin-email", "boss@store.local"])
        second = runner.invoke(args=["system", "init", "--admin-email", "boss@store.local"])

        assert first.exit_code == 0, first.output
        assert "PASS Created admin: boss@store.local" in first.output
        assert "already exists" in second.output
        assert db_session.query(Category).count() == 5
        admin = db_session.query(User).filter_by(email="boss@store.local").one()
        assert admin.is_admin


class TestUserCommands:

    def test_create_admin_and_list(self, app, db_session, customer):
        runner = app.test_cli_runner()

        result = runner.invoke(args=[
            "users", "create-admin", "--name", "Second Admin",
            "--email", "second@store.local", "--password", "Password123",
        ])
        assert result.exit_code == 0, result.output

        listed = runner.invoke(args=["users", "list", "--role", "admin"])
        assert "second@store.local" in listed.output
        assert "ana@example.com" not in listed.output

    def test_create_admin_weak_password(self, app, db_session):
        result = app.test_cli_runner().invoke(args=[
            "users", "create-admin", "--name", "Admin", "--email", "weak@store.local", "--password", "weak",
        ])
        assert result.exit_code != 0
        assert "at least 8 characters" in result.output


class TestMaintenanceCommands:

    def test_purge_pending_subscribers(self, app, db_session):
        db_session.add(PendingSubscriber(
            email="old@example.com", confirmation_token="9" * 64, expires_at=utcnow() - timedelta(days=2),
        ))
        db_session.commit()

        result = app.test_cli_runner().invoke(args=["maintenance", "purge-pending-subscribers"])

        assert "Deleted 1 expired pending subscribers" in result.output
        assert db_session.query(PendingSubscriber).count() == 0
