"""
Ledger collaborator tests: balances, allowances and batch transfers.
"""

import pytest

from test_mocks import (
    MOCK_OWNER_ADDRESS,
    MOCK_SPENDER_ADDRESS,
    MOCK_RECIPIENT_ADDRESS,
    MOCK_RELAYER_ADDRESS,
)

from typed_permit.engine.events import ApprovalEvent, EventBus, TransferEvent
from typed_permit.engine.exceptions import (
    InsufficientAllowanceError,
    InsufficientFundsError,
    MalformedArgumentsError,
)
from typed_permit.evm.constants import amount_to_value
from typed_permit.evm.hashing import UINT256_MAX, ZERO_ADDRESS
from typed_permit.token.ledger import TokenLedger


@pytest.fixture
def ledger():
    ledger = TokenLedger(name="EIP712 Test Token", symbol="E712", decimals=18)
    ledger.mint(MOCK_OWNER_ADDRESS, amount_to_value(amount=1000, decimals=18))
    return ledger


class TestMetadata:

    def test_metadata(self, ledger):
        assert ledger.name == "EIP712 Test Token"
        assert ledger.symbol == "E712"
        assert ledger.decimals == 18
        assert ledger.total_supply == 1000 * 10**18

    def test_mint_emits_transfer_from_zero(self, ledger):
        assert ledger.event_bus.history[0] == TransferEvent(
            sender=ZERO_ADDRESS, recipient=MOCK_OWNER_ADDRESS, value=1000 * 10**18,
        )

    def test_mint_bounds(self, ledger):
        with pytest.raises(MalformedArgumentsError):
            ledger.mint(ZERO_ADDRESS, 1)
        with pytest.raises(MalformedArgumentsError):
            ledger.mint(MOCK_SPENDER_ADDRESS, UINT256_MAX)

    def test_shared_event_bus(self):
        bus = EventBus()
        ledger = TokenLedger(name="T", symbol="T", event_bus=bus)
        ledger.mint(MOCK_OWNER_ADDRESS, 1)
        assert len(bus.history) == 1


class TestTransfer:

    def test_transfer(self, ledger):
        assert ledger.transfer(MOCK_OWNER_ADDRESS, MOCK_RECIPIENT_ADDRESS, 10)
        assert ledger.balance_of(MOCK_RECIPIENT_ADDRESS) == 10
        assert ledger.balance_of(MOCK_OWNER_ADDRESS.lower()) == 1000 * 10**18 - 10

    def test_transfer_insufficient(self, ledger):
        with pytest.raises(InsufficientFundsError):
            ledger.transfer(MOCK_SPENDER_ADDRESS, MOCK_RECIPIENT_ADDRESS, 1)

    def test_transfer_to_zero(self, ledger):
        with pytest.raises(MalformedArgumentsError):
            ledger.transfer(MOCK_OWNER_ADDRESS, ZERO_ADDRESS, 1)


class TestAllowance:

    def test_approve_and_transfer_from(self, ledger):
        ledger.approve(MOCK_OWNER_ADDRESS, MOCK_SPENDER_ADDRESS, 100)
        assert ledger.allowance(MOCK_OWNER_ADDRESS, MOCK_SPENDER_ADDRESS) == 100

        ledger.transfer_from(MOCK_SPENDER_ADDRESS, MOCK_OWNER_ADDRESS, MOCK_RECIPIENT_ADDRESS, 60)
        assert ledger.allowance(MOCK_OWNER_ADDRESS, MOCK_SPENDER_ADDRESS) == 40
        assert ledger.balance_of(MOCK_RECIPIENT_ADDRESS) == 60
        assert ApprovalEvent(owner=MOCK_OWNER_ADDRESS, spender=MOCK_SPENDER_ADDRESS, value=100) in ledger.event_bus.history

    def test_transfer_from_over_allowance(self, ledger):
        ledger.approve(MOCK_OWNER_ADDRESS, MOCK_SPENDER_ADDRESS, 5)
        with pytest.raises(InsufficientAllowanceError) as exc_info:
            ledger.transfer_from(MOCK_SPENDER_ADDRESS, MOCK_OWNER_ADDRESS, MOCK_RECIPIENT_ADDRESS, 6)
        assert exc_info.value.available == 5
        assert ledger.allowance(MOCK_OWNER_ADDRESS, MOCK_SPENDER_ADDRESS) == 5

    def test_transfer_from_over_balance_keeps_allowance(self, ledger):
        ledger.approve(MOCK_RECIPIENT_ADDRESS, MOCK_SPENDER_ADDRESS, 5)
        with pytest.raises(InsufficientFundsError):
            ledger.transfer_from(MOCK_SPENDER_ADDRESS, MOCK_RECIPIENT_ADDRESS, MOCK_OWNER_ADDRESS, 5)
        assert ledger.allowance(MOCK_RECIPIENT_ADDRESS, MOCK_SPENDER_ADDRESS) == 5

    def test_zero_value_transfer_from_without_allowance(self, ledger):
        assert ledger.transfer_from(MOCK_SPENDER_ADDRESS, MOCK_OWNER_ADDRESS, MOCK_RECIPIENT_ADDRESS, 0)
        assert ledger.allowance(MOCK_OWNER_ADDRESS, MOCK_SPENDER_ADDRESS) == 0


class TestBatchTransfer:

    def test_batch_transfer(self, ledger):
        recipients = [MOCK_SPENDER_ADDRESS, MOCK_RECIPIENT_ADDRESS, MOCK_RELAYER_ADDRESS]
        amounts = [amount_to_value(amount=a, decimals=18) for a in (10, 20, 30)]
        assert ledger.batch_transfer(MOCK_OWNER_ADDRESS, recipients, amounts)
        assert ledger.balance_of(MOCK_RELAYER_ADDRESS) == 30 * 10**18
        assert ledger.balance_of(MOCK_OWNER_ADDRESS) == 940 * 10**18
        assert len(ledger.event_bus.events_of(TransferEvent)) == 4

    def test_length_mismatch(self, ledger):
        with pytest.raises(MalformedArgumentsError):
            ledger.batch_transfer(MOCK_OWNER_ADDRESS, [MOCK_SPENDER_ADDRESS], [1, 2])

    def test_empty(self, ledger):
        with pytest.raises(MalformedArgumentsError):
            ledger.batch_transfer(MOCK_OWNER_ADDRESS, [], [])

    def test_all_or_nothing(self, ledger):
        balance = ledger.balance_of(MOCK_OWNER_ADDRESS)
        with pytest.raises(InsufficientFundsError):
            ledger.batch_transfer(MOCK_OWNER_ADDRESS, [MOCK_SPENDER_ADDRESS, MOCK_RECIPIENT_ADDRESS], [1, balance])
        assert ledger.balance_of(MOCK_SPENDER_ADDRESS) == 0
        assert ledger.balance_of(MOCK_OWNER_ADDRESS) == balance

    def test_zero_recipient_rejects_whole_batch(self, ledger):
        with pytest.raises(MalformedArgumentsError):
            ledger.batch_transfer(MOCK_OWNER_ADDRESS, [MOCK_SPENDER_ADDRESS, ZERO_ADDRESS], [1, 1])
        assert ledger.balance_of(MOCK_SPENDER_ADDRESS) == 0
