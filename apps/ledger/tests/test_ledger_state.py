import unittest
from unittest.mock import MagicMock

from apps.ledger.errors import ArithmeticOverflow, InvalidAddress
from apps.ledger.events import LoggedEvent, TreeAdded, TreeRemoved
from apps.ledger.models import TreeRecord
from apps.ledger.tests.support import CONTRACT, DISPATCHER_CODE, ROOT_A, USER1, build_state


def _record(root: str = ROOT_A) -> TreeRecord:
    return TreeRecord(
        root=root,
        description='draft',
        timestamp=1,
        list_size=2,
        creator=USER1,
        is_active=True
    )


class TransactionTests(unittest.TestCase):
    def setUp(self) -> None:
        self.state = build_state()

    def test_commit_publishes_state_and_events(self) -> None:
        with self.state.transaction() as tx:
            tx.put_tree(_record())
            tx.mark_registered(USER1)
            tx.emit(TreeAdded(root=ROOT_A, creator=USER1))
            self.assertIsNone(self.state.tree(ROOT_A))
            self.assertEqual(len(self.state.event_log), 0)

        self.assertEqual(self.state.tree(ROOT_A), _record())
        self.assertTrue(self.state.has_registered(USER1))
        self.assertEqual(len(self.state.event_log), 1)

    def test_failure_rolls_back_everything(self) -> None:
        before = self.state.snapshot
        with self.assertRaises(RuntimeError):
            with self.state.transaction() as tx:
                tx.put_tree(_record())
                tx.credit(USER1, 10)
                tx.emit(TreeAdded(root=ROOT_A, creator=USER1))
                raise RuntimeError('abort')

        self.assertIs(self.state.snapshot, before)
        self.assertIsNone(self.state.tree(ROOT_A))
        self.assertEqual(self.state.balance_of(USER1), 0)
        self.assertEqual(len(self.state.event_log), 0)

    def test_balance_overflow_aborts(self) -> None:
        self.state.set_balance(USER1, 2**256 - 1)
        with self.assertRaises(ArithmeticOverflow):
            with self.state.transaction() as tx:
                tx.credit(USER1, 1)
        self.assertEqual(self.state.balance_of(USER1), 2**256 - 1)

    def test_committed_snapshot_is_read_only(self) -> None:
        self.state.deploy_code(CONTRACT, DISPATCHER_CODE)
        with self.assertRaises(TypeError):
            self.state.snapshot.code[USER1] = b'\x00'  # type: ignore[index]

    def test_seeding_normalizes_addresses(self) -> None:
        self.state.deploy_code(CONTRACT.lower(), DISPATCHER_CODE)
        self.assertEqual(self.state.code_of(CONTRACT), DISPATCHER_CODE)
        with self.assertRaises(InvalidAddress):
            self.state.set_balance('nope', 1)

    def test_empty_code_clears_account(self) -> None:
        self.state.deploy_code(CONTRACT, DISPATCHER_CODE)
        self.state.deploy_code(CONTRACT, b'')
        self.assertEqual(self.state.code_of(CONTRACT), b'')


class SyncAccountTests(unittest.TestCase):
    def test_copies_code_and_balance_from_node(self) -> None:
        state = build_state()
        w3 = MagicMock()
        w3.eth.get_code.return_value = DISPATCHER_CODE
        w3.eth.get_balance.return_value = 42

        state.sync_account(w3, CONTRACT.lower())

        w3.eth.get_code.assert_called_once_with(CONTRACT, block_identifier='latest')
        self.assertEqual(state.code_of(CONTRACT), DISPATCHER_CODE)
        self.assertEqual(state.balance_of(CONTRACT), 42)


class EventDeliveryTests(unittest.TestCase):
    def test_subscribers_run_after_write_lock_is_released(self) -> None:
        state = build_state()
        observed: list[tuple[int, bool]] = []

        def subscriber(entry: LoggedEvent) -> None:
            observed.append((entry.sequence, state._write_lock.locked()))

        state.event_log.subscribe(subscriber)
        with state.transaction() as tx:
            tx.emit(TreeAdded(root=ROOT_A, creator=USER1))
            tx.emit(TreeRemoved(root=ROOT_A))

        self.assertEqual(observed, [(1, False), (2, False)])

    def test_subscriber_may_start_a_new_transaction(self) -> None:
        state = build_state()

        def subscriber(entry: LoggedEvent) -> None:
            if isinstance(entry.event, TreeAdded):
                state.set_balance(USER1, 5)

        state.event_log.subscribe(subscriber)
        with state.transaction() as tx:
            tx.emit(TreeAdded(root=ROOT_A, creator=USER1))

        self.assertEqual(state.balance_of(USER1), 5)

    def test_transaction_batch_is_contiguous(self) -> None:
        state = build_state()
        state.event_log.append(TreeRemoved(root=ROOT_A))
        with state.transaction() as tx:
            tx.emit(TreeAdded(root=ROOT_A, creator=USER1))
            state.event_log.append(TreeRemoved(root=ROOT_A))
            tx.emit(TreeRemoved(root=ROOT_A))

        names = [entry.event.name for entry in state.event_log.since()]
        self.assertEqual(names, ['TreeRemoved', 'TreeRemoved', 'TreeAdded', 'TreeRemoved'])
        self.assertEqual([entry.sequence for entry in state.event_log.since()], [1, 2, 3, 4])

    def test_failing_subscriber_does_not_undo_commit(self) -> None:
        state = build_state()

        def subscriber(entry: LoggedEvent) -> None:
            raise RuntimeError('consumer down')

        state.event_log.subscribe(subscriber)
        with self.assertLogs('contract_ledger.events', level='ERROR'):
            with state.transaction() as tx:
                tx.put_tree(_record())
                tx.emit(TreeAdded(root=ROOT_A, creator=USER1))

        self.assertEqual(state.tree(ROOT_A), _record())
        self.assertEqual(len(state.event_log), 1)
