"""
CLI command tests.

Verifies:
- seed-demo is idempotent
- sessions list / stale / force-close / events output and exit codes
"""

from branchpos.extensions import db
from branchpos.models import Branch, PaymentMethod, Product, RegisterSession, User
from branchpos.time_utils import hours_ago


class TestSystemCommands:

    def test_seed_demo_idempotent(self, app, db_session):
        runner = app.test_cli_runner()

        first = runner.invoke(args=["system", "seed-demo"])
        second = runner.invoke(args=["system", "seed-demo"])

        assert first.exit_code == 0, first.output
        assert second.exit_code == 0, second.output
        assert "already exists" in second.output
        assert db.session.query(Branch).count() == 1
        assert db.session.query(User).count() == 3
        assert db.session.query(Product).count() == 5
        assert db.session.query(PaymentMethod).count() == 6


class TestSessionCommands:

    def test_list_sessions(self, app, open_session):
        result = app.test_cli_runner().invoke(args=["sessions", "list"])

        assert result.exit_code == 0
        assert "OPEN" in result.output
        assert "1 of 1 session(s)" in result.output

    def test_list_empty(self, app, db_session):
        result = app.test_cli_runner().invoke(args=["sessions", "list", "--status", "CLOSED"])
        assert "No sessions found." in result.output

    def test_stale_sessions(self, app, open_session):
        runner = app.test_cli_runner()
        result = runner.invoke(args=["sessions", "stale"])
        assert "No OPEN sessions older than 18h." in result.output

        db.session.query(RegisterSession).filter_by(id=open_session.id).update({"opened_at": hours_ago(30)})
        db.session.commit()

        result = runner.invoke(args=["sessions", "stale", "--hours", "24"])
        assert f"Session {open_session.id}:" in result.output
        assert "1 stale session(s)" in result.output

    def test_force_close(self, app, open_session, make_sale, manager):
        make_sale(open_session, 20000, "CASH")

        result = app.test_cli_runner().invoke(
            args=["sessions", "force-close", str(open_session.id), "--reason", "Terminal crashed",
                  "--actor-id", str(manager.id)]
        )

        assert result.exit_code == 0, result.output
        assert f"PASS Session {open_session.id} force-closed" in result.output
        assert "expected 200.00" in result.output

    def test_force_close_by_cashier_fails(self, app, open_session, cashier):
        result = app.test_cli_runner().invoke(
            args=["sessions", "force-close", str(open_session.id), "--reason", "Going home",
                  "--actor-id", str(cashier.id)]
        )

        assert result.exit_code == 1
        assert "FAIL FORBIDDEN" in result.output
        assert db.session.get(RegisterSession, open_session.id).is_open

    def test_events(self, app, open_session, make_sale):
        make_sale(open_session, 10000)
        runner = app.test_cli_runner()

        result = runner.invoke(args=["sessions", "events", str(open_session.id)])
        assert "session.opened" in result.output
        assert "sale.completed" in result.output

        result = runner.invoke(args=["sessions", "events", "9999"])
        assert "No events recorded for session 9999." in result.output
