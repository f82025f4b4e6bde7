import unittest

from apps.ledger.cost_model import CALL_EXECUTION_GAS, deployment_cost, intrinsic_call_gas
from apps.ledger.errors import InvalidAddress, InvalidSelector
from apps.ledger.events import ContractAnalyzed, GasEstimated
from apps.ledger.models import ZERO_ADDRESS
from apps.ledger.tests.support import CONTRACT, DISPATCHER_CODE, GAS_PRICE, USER1, build_analyzer

TRANSFER_SELECTOR = '0xa9059cbb'


def _transfer_call_data() -> bytes:
    return (
        bytes.fromhex('a9059cbb')
        + bytes(12) + bytes.fromhex(USER1[2:])
        + (10**18).to_bytes(32, 'big')
    )


class AnalyzeContractTests(unittest.TestCase):
    def setUp(self) -> None:
        self.analyzer = build_analyzer()

    def test_analyzes_deployed_contract(self) -> None:
        analysis = self.analyzer.analyze_contract(CONTRACT)

        self.assertTrue(analysis.is_contract)
        self.assertEqual(analysis.code_size, len(DISPATCHER_CODE))
        self.assertEqual(analysis.contract_size, analysis.code_size)
        self.assertEqual(analysis.estimated_deployment_gas, deployment_cost(len(DISPATCHER_CODE), GAS_PRICE))
        self.assertGreater(analysis.estimated_deployment_gas, 21_000)

    def test_externally_owned_account(self) -> None:
        analysis = self.analyzer.analyze_contract(USER1)

        self.assertFalse(analysis.is_contract)
        self.assertEqual(analysis.code_size, 0)
        self.assertEqual(analysis.contract_size, 0)
        self.assertEqual(analysis.estimated_deployment_gas, 0)

    def test_rejects_zero_address(self) -> None:
        with self.assertRaises(InvalidAddress) as ctx:
            self.analyzer.analyze_contract(ZERO_ADDRESS)
        self.assertEqual(ctx.exception.status_code, 422)
        self.assertIn(ZERO_ADDRESS, str(ctx.exception))

    def test_rejects_malformed_address(self) -> None:
        with self.assertRaises(InvalidAddress):
            self.analyzer.analyze_contract('0x1234')

    def test_emits_event_and_is_idempotent(self) -> None:
        first = self.analyzer.analyze_contract(CONTRACT.lower())
        second = self.analyzer.analyze_contract(CONTRACT)

        self.assertEqual(first, second)
        events = self.analyzer.state.event_log.of_type(ContractAnalyzed)
        self.assertEqual(len(events), 2)
        self.assertEqual(events[0].address, CONTRACT)
        self.assertEqual(events[0].analysis, first)


class BasicInfoTests(unittest.TestCase):
    def setUp(self) -> None:
        self.analyzer = build_analyzer()

    def test_contract_info(self) -> None:
        info = self.analyzer.get_basic_info(CONTRACT)
        self.assertTrue(info.is_contract)
        self.assertEqual(info.code_size, len(DISPATCHER_CODE))
        self.assertEqual(info.balance, 0)

    def test_reports_balance(self) -> None:
        self.analyzer.state.set_balance(USER1, 5 * 10**18)
        info = self.analyzer.get_basic_info(USER1)
        self.assertEqual(info, (0, 5 * 10**18, False))

    def test_tolerates_zero_address(self) -> None:
        info = self.analyzer.get_basic_info(ZERO_ADDRESS)
        self.assertFalse(info.is_contract)
        self.assertEqual(info.code_size, 0)


class HasFunctionTests(unittest.TestCase):
    def setUp(self) -> None:
        self.analyzer = build_analyzer()

    def test_any_code_counts_regardless_of_selector(self) -> None:
        for selector in (TRANSFER_SELECTOR, '0xdeadbeef', bytes(4)):
            self.assertTrue(self.analyzer.has_function(CONTRACT, selector))
            self.assertFalse(self.analyzer.has_function(USER1, selector))

    def test_rejects_malformed_selector(self) -> None:
        with self.assertRaises(InvalidSelector):
            self.analyzer.has_function(CONTRACT, '0xabc')


class EstimateGasTests(unittest.TestCase):
    def setUp(self) -> None:
        self.analyzer = build_analyzer()

    def test_successful_call(self) -> None:
        call_data = _transfer_call_data()
        estimate = self.analyzer.estimate_gas(CONTRACT, TRANSFER_SELECTOR, call_data)

        self.assertTrue(estimate.success)
        self.assertEqual(estimate.gas_used, intrinsic_call_gas(call_data) + CALL_EXECUTION_GAS)
        self.assertEqual(estimate.gas_price, GAS_PRICE)

    def test_reverting_call_is_reported_not_raised(self) -> None:
        estimate = self.analyzer.estimate_gas(CONTRACT, '0xdeadbeef', bytes.fromhex('deadbeef'))

        self.assertFalse(estimate.success)
        self.assertEqual(estimate.gas_used, 21_000 + 4 * 16)
        self.assertEqual(estimate.gas_price, GAS_PRICE)

    def test_call_to_account_without_code_succeeds(self) -> None:
        estimate = self.analyzer.estimate_gas(USER1, TRANSFER_SELECTOR, b'')
        self.assertTrue(estimate.success)
        self.assertEqual(estimate.gas_used, 21_000)

    def test_emits_event_without_touching_state(self) -> None:
        before = self.analyzer.state.snapshot
        estimate = self.analyzer.estimate_gas(CONTRACT, TRANSFER_SELECTOR, _transfer_call_data())

        self.assertIs(self.analyzer.state.snapshot, before)
        events = self.analyzer.state.event_log.of_type(GasEstimated)
        self.assertEqual(len(events), 1)
        self.assertEqual(events[0].selector, TRANSFER_SELECTOR)
        self.assertEqual(events[0].estimate, estimate)
