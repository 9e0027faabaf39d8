"""
Operator script tests.

Both scripts open their own engine from --database-url, so test data is
committed through Database.session_scope() first.
"""

from credit_kernel.models.credit_batch import GrantScene
from credit_kernel.models.media_task import MediaTask, TaskStatus
from credit_kernel.selectors.ledger_selector import LedgerSelector
from credit_kernel.services.grant_service import GrantService
from credit_kernel.services.ledger_service import CreditLedger
from credit_kernel.services.task_service import TaskService
from scripts import analyze_consumption, reconcile_refunds
from tests.conftest import YOUTUBE_URL


def _stranded_task(database, clock, policy, user):
    """Submit a task, then mark it failed without refunding its charge."""
    with database.session_scope() as session:
        CreditLedger(session, clock).grant(user, 100, GrantScene.PAYMENT)
        task_id = TaskService(session, policy, clock).submit_task(user, YOUTUBE_URL).id
    with database.session_scope() as session:
        session.get(MediaTask, task_id).status = TaskStatus.FAILED
    return task_id


class TestReconcileRefunds:
    def test_clean_database_exits_zero(self, database_url, capsys):
        code = reconcile_refunds.main(["--database-url", database_url])

        out = capsys.readouterr().out
        assert code == 0
        assert "RECONCILIATION AUDIT" in out
        assert "Failed tasks with active charges: 0" in out

    def test_repairs_stranded_task(
        self, database, database_url, deterministic_clock, ledger_policy, user_id, capsys
    ):
        task_id = _stranded_task(database, deterministic_clock, ledger_policy, user_id)

        code = reconcile_refunds.main(["--database-url", database_url])

        out = capsys.readouterr().out
        assert code == 0
        assert str(task_id) in out
        assert "Credits restored: 10" in out
        with database.session_scope() as session:
            assert LedgerSelector(session).consumption_summary(user_id).active == 0

    def test_dry_run_reports_only(
        self, database, database_url, deterministic_clock, ledger_policy, user_id, capsys
    ):
        _stranded_task(database, deterministic_clock, ledger_policy, user_id)

        code = reconcile_refunds.main(
            ["--database-url", database_url, "--user-id", user_id, "--dry-run"]
        )

        out = capsys.readouterr().out
        assert code == 0
        assert "DRY RUN: 1 task(s) would be repaired" in out
        with database.session_scope() as session:
            assert LedgerSelector(session).consumption_summary(user_id).active == 10

    def test_premature_refund_needs_attention(
        self, database, database_url, deterministic_clock, ledger_policy, user_id, capsys
    ):
        with database.session_scope() as session:
            CreditLedger(session, deterministic_clock).grant(user_id, 100, GrantScene.PAYMENT)
            task = TaskService(session, ledger_policy, deterministic_clock).submit_task(
                user_id, YOUTUBE_URL
            )
            CreditLedger(session, deterministic_clock).refund(task.consumption_id)

        code = reconcile_refunds.main(["--database-url", database_url])

        out = capsys.readouterr().out
        assert code == 1
        assert "Refunded charges of unfailed tasks: 1" in out


class TestAnalyzeConsumption:
    def test_unknown_user(self, database_url, capsys):
        code = analyze_consumption.main(["nobody", "--database-url", database_url])

        out = capsys.readouterr().out
        assert code == 0
        assert "No credit batches found." in out
        assert "No consumption records found." in out
        assert "Current balance: 0" in out

    def test_history_and_balance(
        self, database, database_url, deterministic_clock, ledger_policy, user_id, capsys
    ):
        with database.session_scope() as session:
            GrantService(session, ledger_policy.welcome_grant, deterministic_clock).grant_welcome_credits(
                user_id
            )
            ledger = CreditLedger(session, deterministic_clock)
            ledger.grant(user_id, 30, GrantScene.PAYMENT)
            ledger.consume(user_id, 12, "media-task")
            refunded = ledger.consume(user_id, 8, "media-task")
            ledger.refund(refunded.id)

        code = analyze_consumption.main([user_id, "--database-url", database_url])

        out = capsys.readouterr().out
        assert code == 0
        assert "welcome" in out
        assert "payment" in out
        assert "REFUNDED" in out
        assert "Total consumed:  20" in out
        assert "Still charged:   12" in out
