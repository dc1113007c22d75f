"""
In-process ERC-20 style balance ledger.

The ledger owns balances, allowances and total supply.  Its public
operations mirror the token ABI (``transfer``, ``approve``,
``transfer_from``, ``batch_transfer``) with the acting account passed
explicitly, since there is no transaction sender in-process.

``PermitToken`` drives the ledger through ``apply_transfer`` and
``apply_approval`` after its own gates have passed, and shares the ledger's
lock so that ledger calls and authorization entry points never interleave.
"""

import logging
import threading
from typing import Dict, List, Optional, Sequence

from ..engine.events import EventBus, TransferEvent, ApprovalEvent
from ..engine.exceptions import (
    InsufficientFundsError,
    InsufficientAllowanceError,
    MalformedArgumentsError,
)
from ..evm.hashing import ZERO_ADDRESS, UINT256_MAX, normalize_address, ensure_uint256

logger = logging.getLogger(__name__)


class TokenLedger:
    """
    Balances and allowances of a single token.

    Args:
        name: Token name; also used as the EIP-712 domain name by ``PermitToken``.
        symbol: Token symbol.
        decimals: Number of decimals of the smallest unit.
        event_bus: Bus receiving ``TransferEvent`` and ``ApprovalEvent``; a
            private bus is created when omitted.
    """

    def __init__(
        self,
        name: str,
        symbol: str,
        decimals: int = 18,
        event_bus: Optional[EventBus] = None,
    ) -> None:
        self.name = name
        self.symbol = symbol
        self.decimals = decimals
        self.event_bus = event_bus if event_bus is not None else EventBus()
        self.lock = threading.RLock()
        self._total_supply = 0
        self._balances: Dict[str, int] = {}
        self._allowances: Dict[str, Dict[str, int]] = {}

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    @property
    def total_supply(self) -> int:
        return self._total_supply

    def balance_of(self, account: str) -> int:
        account = normalize_address(account, field_name="account")
        with self.lock:
            return self._balances.get(account, 0)

    def allowance(self, owner: str, spender: str) -> int:
        owner = normalize_address(owner, field_name="owner")
        spender = normalize_address(spender, field_name="spender")
        with self.lock:
            return self._allowances.get(owner, {}).get(spender, 0)

    # ------------------------------------------------------------------
    # Unchecked mutations; callers gate and dispatch
    # ------------------------------------------------------------------

    def apply_transfer(self, sender: str, recipient: str, value: int) -> TransferEvent:
        """
        Move ``value`` from ``sender`` to ``recipient`` and return the event
        to dispatch.

        Raises:
            MalformedArgumentsError: If ``recipient`` is the zero address.
            InsufficientFundsError: If ``sender`` holds less than ``value``.
        """
        with self.lock:
            if recipient == ZERO_ADDRESS:
                raise MalformedArgumentsError("Cannot transfer to the zero address")
            available = self._balances.get(sender, 0)
            if available < value:
                raise InsufficientFundsError(
                    f"Insufficient balance: {sender} holds {available}, needs {value}",
                    required=value,
                    available=available,
                )
            self._balances[sender] = available - value
            self._balances[recipient] = self._balances.get(recipient, 0) + value
        return TransferEvent(sender=sender, recipient=recipient, value=value)

    def apply_approval(self, owner: str, spender: str, value: int) -> ApprovalEvent:
        """Set ``spender``'s allowance over ``owner`` to ``value`` and return the event to dispatch."""
        with self.lock:
            self._allowances.setdefault(owner, {})[spender] = value
        return ApprovalEvent(owner=owner, spender=spender, value=value)

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def mint(self, account: str, value: int) -> None:
        """
        Create ``value`` new units for ``account`` (initial distribution).

        Raises:
            MalformedArgumentsError: If ``account`` is the zero address or the
                total supply would exceed ``2**256 - 1``.
        """
        account = normalize_address(account, field_name="account")
        ensure_uint256(value)
        if account == ZERO_ADDRESS:
            raise MalformedArgumentsError("Cannot mint to the zero address")
        with self.lock:
            if self._total_supply + value > UINT256_MAX:
                raise MalformedArgumentsError("Total supply would exceed uint256")
            self._total_supply += value
            self._balances[account] = self._balances.get(account, 0) + value
            event = TransferEvent(sender=ZERO_ADDRESS, recipient=account, value=value)
            logger.info("Minted %s to %s", value, account)
            self.event_bus.dispatch(event)

    def transfer(self, sender: str, recipient: str, value: int) -> bool:
        """
        Move ``value`` of ``sender``'s own balance to ``recipient``.

        Raises:
            InsufficientFundsError: If ``sender``'s balance is below ``value``.
            MalformedArgumentsError: On malformed addresses or amounts.
        """
        sender = normalize_address(sender, field_name="sender")
        recipient = normalize_address(recipient, field_name="recipient")
        ensure_uint256(value)
        with self.lock:
            event = self.apply_transfer(sender, recipient, value)
            self.event_bus.dispatch(event)
        return True

    def approve(self, owner: str, spender: str, value: int) -> bool:
        """Set ``spender``'s allowance over ``owner``'s balance to ``value``."""
        owner = normalize_address(owner, field_name="owner")
        spender = normalize_address(spender, field_name="spender")
        ensure_uint256(value)
        with self.lock:
            event = self.apply_approval(owner, spender, value)
            self.event_bus.dispatch(event)
        return True

    def transfer_from(self, spender: str, sender: str, recipient: str, value: int) -> bool:
        """
        Move ``value`` from ``sender`` to ``recipient`` on behalf of ``spender``,
        consuming ``spender``'s allowance.

        Raises:
            InsufficientAllowanceError: If the allowance is below ``value``.
            InsufficientFundsError: If ``sender``'s balance is below ``value``.
        """
        spender = normalize_address(spender, field_name="spender")
        sender = normalize_address(sender, field_name="sender")
        recipient = normalize_address(recipient, field_name="recipient")
        ensure_uint256(value)
        with self.lock:
            allowed = self._allowances.get(sender, {}).get(spender, 0)
            if allowed < value:
                raise InsufficientAllowanceError(
                    f"Insufficient allowance: {spender} may spend {allowed} of {sender}, needs {value}",
                    required=value,
                    available=allowed,
                )
            event = self.apply_transfer(sender, recipient, value)
            self._allowances.setdefault(sender, {})[spender] = allowed - value
            self.event_bus.dispatch(event)
        return True

    def batch_transfer(self, sender: str, recipients: Sequence[str], amounts: Sequence[int]) -> bool:
        """
        Transfer ``amounts[i]`` to ``recipients[i]`` from ``sender``.

        All-or-nothing: every recipient and amount is validated and the total
        checked against ``sender``'s balance before any balance changes.

        Raises:
            MalformedArgumentsError: If the lists are empty or differ in length.
            InsufficientFundsError: If the total exceeds ``sender``'s balance.
        """
        if len(recipients) != len(amounts):
            raise MalformedArgumentsError(
                f"recipients and amounts differ in length ({len(recipients)} != {len(amounts)})"
            )
        if not recipients:
            raise MalformedArgumentsError("batch_transfer requires at least one recipient")

        sender = normalize_address(sender, field_name="sender")
        targets = [normalize_address(r, field_name="recipient") for r in recipients]
        values = [ensure_uint256(a, field_name="amount") for a in amounts]
        if ZERO_ADDRESS in targets:
            raise MalformedArgumentsError("Cannot transfer to the zero address")

        total = sum(values)
        events: List[TransferEvent] = []
        with self.lock:
            available = self._balances.get(sender, 0)
            if available < total:
                raise InsufficientFundsError(
                    f"Insufficient balance for batch: {sender} holds {available}, needs {total}",
                    required=total,
                    available=available,
                )
            for recipient, value in zip(targets, values):
                events.append(self.apply_transfer(sender, recipient, value))
            logger.info("Batch transfer of %s from %s to %d recipients", total, sender, len(targets))
            for event in events:
                self.event_bus.dispatch(event)
        return True
