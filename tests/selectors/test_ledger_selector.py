"""
LedgerSelector and TaskSelector tests (read side).
"""

from datetime import timedelta

from credit_kernel.models.credit_batch import RecordStatus
from credit_kernel.models.media_task import TaskStatus
from credit_kernel.selectors.ledger_selector import LedgerSelector
from credit_kernel.selectors.task_selector import TaskSelector
from tests.conftest import YOUTUBE_URL


class TestLedgerSelector:
    def test_balance_of_unknown_user_is_zero(self, session, deterministic_clock):
        assert LedgerSelector(session).balance("nobody", deterministic_clock.now()) == 0

    def test_balance_as_of_past_and_future(self, session, fund, deterministic_clock, user_id):
        fund(user_id, 10, valid_days=3)
        fund(user_id, 5)
        selector = LedgerSelector(session)
        now = deterministic_clock.now()

        assert selector.balance(user_id, now) == 15
        assert selector.balance(user_id, now + timedelta(days=5)) == 5

    def test_spendable_batches_in_consumption_order(
        self, session, fund, deterministic_clock, user_id
    ):
        forever = fund(user_id, 1)
        late = fund(user_id, 1, valid_days=10)
        soon = fund(user_id, 1, valid_days=2)

        views = LedgerSelector(session).spendable_batches(user_id, deterministic_clock.now())

        assert [v.batch_id for v in views] == [soon.id, late.id, forever.id]

    def test_batches_excludes_revoked_unless_asked(self, session, ledger, fund, user_id):
        kept = fund(user_id, 3)
        revoked = fund(user_id, 4)
        ledger.revoke(revoked.id)
        selector = LedgerSelector(session)

        assert [b.batch_id for b in selector.batches(user_id)] == [kept.id]
        assert {b.batch_id for b in selector.batches(user_id, include_deleted=True)} == {
            kept.id,
            revoked.id,
        }

    def test_consumption_view_has_line_items(self, session, ledger, fund, user_id):
        first = fund(user_id, 4, valid_days=1)
        second = fund(user_id, 10, valid_days=2)
        record = ledger.consume(user_id, 6, "media-task", description="two batches")

        view = LedgerSelector(session).consumption(record.id)

        assert view.amount == 6
        assert view.line_total == 6
        assert view.description == "two batches"
        assert not view.is_refunded
        assert {(i.batch_id, i.amount) for i in view.line_items} == {
            (first.id, 4),
            (second.id, 2),
        }
        assert {(i.batch_id, i.amount) for i in LedgerSelector(session).line_items(record.id)} == {
            (first.id, 4),
            (second.id, 2),
        }

    def test_consumption_summary(self, session, ledger, fund, deterministic_clock, user_id):
        fund(user_id, 100)
        ledger.consume(user_id, 10, "media-task")
        deterministic_clock.tick()
        refunded = ledger.consume(user_id, 25, "media-task")
        ledger.refund(refunded.id)

        summary = LedgerSelector(session).consumption_summary(user_id)

        assert summary.record_count == 2
        assert summary.total_consumed == 35
        assert summary.refunded == 25
        assert summary.active == 10
        assert summary.net_consumed == 10

    def test_consumptions_newest_first_and_filtered(
        self, session, ledger, fund, deterministic_clock, user_id
    ):
        fund(user_id, 100)
        older = ledger.consume(user_id, 1, "media-task")
        deterministic_clock.tick()
        newer = ledger.consume(user_id, 2, "media-task")
        ledger.refund(older.id)
        selector = LedgerSelector(session)

        assert [c.consumption_id for c in selector.consumptions(user_id)] == [newer.id, older.id]
        deleted = selector.consumptions(user_id, status=RecordStatus.DELETED)
        assert [c.consumption_id for c in deleted] == [older.id]
        assert deleted[0].is_refunded


class TestTaskSelector:
    def test_get_and_count_active(self, session, task_service, fund, user_id):
        fund(user_id, 100)
        task = task_service.submit_task(user_id, YOUTUBE_URL)
        selector = TaskSelector(session)

        view = selector.get(task.id)
        assert view.status == TaskStatus.PENDING
        assert view.consumption_id == task.consumption_id
        assert selector.count_active(user_id) == 1

        task_service.fail_task(task.id, "boom")
        assert selector.count_active(user_id) == 0
        assert selector.failed_task_ids(user_id) == [task.id]

    def test_charges_of_task(self, session, task_service, fund, user_id):
        fund(user_id, 100)
        task = task_service.submit_task(user_id, YOUTUBE_URL)
        selector = TaskSelector(session)

        charges = selector.charges(task.id)
        assert [(c.consumption_id, c.amount, c.status) for c in charges] == [
            (task.consumption_id, 10, RecordStatus.ACTIVE.value)
        ]
        assert selector.active_charge_ids(task.id) == [task.consumption_id]

    def test_tasks_filtered_by_status(self, session, task_service, fund, user_id):
        fund(user_id, 100)
        task = task_service.submit_task(user_id, YOUTUBE_URL)
        selector = TaskSelector(session)

        assert [t.task_id for t in selector.tasks(user_id, TaskStatus.PENDING)] == [task.id]
        assert selector.tasks(user_id, TaskStatus.COMPLETED) == []
