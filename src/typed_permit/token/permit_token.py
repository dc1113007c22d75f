"""
Permit Token

The authorization state machine.  ``PermitToken`` owns the per-account nonce
store and gates two entry points on a signed EIP-712 message:

permit
    ``owner`` signs ``Permit(owner, spender, value, nonce, deadline)``; the
    allowance of ``spender`` is set to ``value``.
transfer_with_permit
    ``from`` signs ``Transfer(from, to, value, nonce, deadline)``; ``value``
    moves from ``from`` to ``to``.

Every gate (deadline, balance, nonce-bound signature) is evaluated before any
state changes, under the ledger's lock.  The nonce is always read from the
store, never taken from the caller, so a signature is valid for exactly one
application.
"""

import dataclasses
import logging
import time
from typing import Callable, Dict, Optional, Sequence, Union

from ..engine.events import EventBus, PermitUsedEvent, TransferWithPermitEvent
from ..engine.exceptions import (
    InsufficientFundsError,
    MalformedArgumentsError,
    PermitExpiredError,
    SignatureVerificationError,
)
from ..evm.constants import TokenConfig, load_token_config
from ..evm.hashing import (
    ZERO_ADDRESS,
    domain_separator,
    ensure_uint256,
    normalize_address,
    permit_hash,
    transfer_hash,
    typed_data_digest,
)
from ..evm.schemas import EVMVerificationResult, PermitAuthorization, TransferAuthorization
from ..evm.standards import EIP712Domain, PERMIT_TYPEHASH, TRANSFER_TYPEHASH
from ..schemas.bases import VerificationStatus
from ..evm.verifies import (
    EthKeysRecoverer,
    SignatureComponent,
    SignerRecoverer,
    validate_signature_components,
    verify_permit,
    verify_transfer,
)
from .ledger import TokenLedger

logger = logging.getLogger(__name__)

Clock = Callable[[], int]


def _system_clock() -> int:
    return int(time.time())


class PermitToken:
    """
    Token ledger gated by EIP-712 Permit and Transfer signatures.

    Args:
        domain: Signing domain.  When omitted it is built from ``config``.
        config: Token configuration; loaded from the environment when neither
            ``domain`` nor ``config`` is supplied.
        ledger: Balance ledger; a fresh ``TokenLedger`` named after the domain
            is created when omitted.
        recoverer: ``SignerRecoverer`` used to recover signers; defaults to
            ``EthKeysRecoverer``.
        clock: Callable returning the current Unix time.
        executor: Identity recorded on ``TransferWithPermitEvent`` when the
            caller does not name one.

    Example::

        token = PermitToken(EIP712Domain("T", "1", 11155111, contract_address))
        token.mint(owner, 1000)
        auth = sign_permit(private_key=key, domain=token.domain, spender=spender,
                           value=1000, nonce=token.get_nonce(owner))
        token.submit_permit(auth)
    """

    def __init__(
        self,
        domain: Optional[EIP712Domain] = None,
        *,
        config: Optional[TokenConfig] = None,
        ledger: Optional[TokenLedger] = None,
        recoverer: Optional[SignerRecoverer] = None,
        clock: Optional[Clock] = None,
        executor: Optional[str] = None,
    ) -> None:
        if domain is None:
            config = config if config is not None else load_token_config()
            domain = config.domain()

        self.domain = dataclasses.replace(
            domain,
            verifyingContract=normalize_address(domain.verifyingContract, field_name="verifyingContract"),
        )
        self._domain_separator = domain_separator(self.domain)

        if ledger is None:
            ledger = TokenLedger(
                name=self.domain.name,
                symbol=config.symbol if config is not None else self.domain.name,
                decimals=config.decimals if config is not None else 18,
            )
        self.ledger = ledger
        self._lock = ledger.lock
        self._recoverer = recoverer if recoverer is not None else EthKeysRecoverer()
        self._clock = clock if clock is not None else _system_clock
        self.executor = normalize_address(executor, field_name="executor") if executor is not None else None
        self._nonces: Dict[str, int] = {}

    @property
    def event_bus(self) -> EventBus:
        return self.ledger.event_bus

    # ------------------------------------------------------------------
    # EIP-712 views
    # ------------------------------------------------------------------

    def get_domain_separator(self) -> bytes:
        return self._domain_separator

    def get_permit_type_hash(self) -> bytes:
        return PERMIT_TYPEHASH

    def get_transfer_type_hash(self) -> bytes:
        return TRANSFER_TYPEHASH

    def get_permit_hash(self, owner: str, spender: str, value: int, nonce: int, deadline: int) -> bytes:
        return permit_hash(owner, spender, value, nonce, deadline)

    def get_transfer_hash(self, sender: str, recipient: str, value: int, nonce: int, deadline: int) -> bytes:
        return transfer_hash(sender, recipient, value, nonce, deadline)

    def get_digest(self, struct_hash: Union[bytes, str]) -> bytes:
        """Digest of ``struct_hash`` under this token's domain."""
        return typed_data_digest(self._domain_separator, struct_hash)

    def get_nonce(self, account: str) -> int:
        """Nonce the next authorization by ``account`` must be signed over."""
        account = normalize_address(account, field_name="account")
        with self._lock:
            return self._nonces.get(account, 0)

    nonces = get_nonce

    # ------------------------------------------------------------------
    # Ledger passthrough
    # ------------------------------------------------------------------

    @property
    def name(self) -> str:
        return self.ledger.name

    @property
    def symbol(self) -> str:
        return self.ledger.symbol

    @property
    def decimals(self) -> int:
        return self.ledger.decimals

    @property
    def total_supply(self) -> int:
        return self.ledger.total_supply

    def balance_of(self, account: str) -> int:
        return self.ledger.balance_of(account)

    def allowance(self, owner: str, spender: str) -> int:
        return self.ledger.allowance(owner, spender)

    def mint(self, account: str, value: int) -> None:
        self.ledger.mint(account, value)

    def transfer(self, sender: str, recipient: str, value: int) -> bool:
        return self.ledger.transfer(sender, recipient, value)

    def approve(self, owner: str, spender: str, value: int) -> bool:
        return self.ledger.approve(owner, spender, value)

    def transfer_from(self, spender: str, sender: str, recipient: str, value: int) -> bool:
        return self.ledger.transfer_from(spender, sender, recipient, value)

    def batch_transfer(self, sender: str, recipients: Sequence[str], amounts: Sequence[int]) -> bool:
        return self.ledger.batch_transfer(sender, recipients, amounts)

    # ------------------------------------------------------------------
    # Gates
    # ------------------------------------------------------------------

    def _check_deadline(self, kind: str, signer: str, deadline: int) -> None:
        now = self._clock()
        if now > deadline:
            logger.warning("%s rejected for %s: expired (now=%s, deadline=%s)", kind, signer, now, deadline)
            raise PermitExpiredError(
                f"{kind} expired: current_time={now} > deadline={deadline}",
                deadline=deadline,
                current_time=now,
            )

    def _check_signature(
        self,
        kind: str,
        digest: bytes,
        v: int,
        r: SignatureComponent,
        s: SignatureComponent,
        signer: str,
    ) -> None:
        try:
            v_norm, r_int, s_int = validate_signature_components(v, r, s)
        except MalformedArgumentsError as e:
            logger.warning("%s rejected for %s: %s", kind, signer, e)
            raise

        recovered = self._recoverer.recover(digest, v_norm, r_int, s_int)
        if recovered is None or recovered.lower() == ZERO_ADDRESS:
            logger.warning("%s rejected for %s: no signer recovered", kind, signer)
            raise SignatureVerificationError(f"Invalid {kind} signature", signer=signer, recovered=recovered)
        if recovered.lower() != signer.lower():
            logger.warning("%s rejected for %s: signed by %s", kind, signer, recovered)
            raise SignatureVerificationError(
                f"Invalid {kind} signature: signer does not match",
                signer=signer,
                recovered=recovered,
            )

    # ------------------------------------------------------------------
    # Authorized entry points
    # ------------------------------------------------------------------

    def permit(
        self,
        owner: str,
        spender: str,
        value: int,
        deadline: int,
        v: int,
        r: SignatureComponent,
        s: SignatureComponent,
    ) -> None:
        """
        Set ``spender``'s allowance over ``owner`` to ``value`` on a signed Permit.

        Raises:
            PermitExpiredError: If the current time is past ``deadline``.
            MalformedArgumentsError: On malformed addresses, amounts or (v, r, s).
            SignatureVerificationError: If the signature does not recover to
                ``owner`` over the current nonce and this token's domain.
        """
        owner = normalize_address(owner, field_name="owner")
        spender = normalize_address(spender, field_name="spender")
        ensure_uint256(value)
        ensure_uint256(deadline, field_name="deadline")

        with self._lock:
            self._check_deadline("Permit", owner, deadline)
            nonce = self._nonces.get(owner, 0)
            digest = self.get_digest(permit_hash(owner, spender, value, nonce, deadline))
            self._check_signature("Permit", digest, v, r, s, owner)

            self._nonces[owner] = nonce + 1
            approval = self.ledger.apply_approval(owner, spender, value)
            used = PermitUsedEvent(owner=owner, spender=spender, value=value, nonce=nonce, deadline=deadline)

            logger.info("Permit applied: %s approved %s for %s (nonce %s)", owner, spender, value, nonce)
            self.event_bus.dispatch(approval)
            self.event_bus.dispatch(used)

    def transfer_with_permit(
        self,
        sender: str,
        recipient: str,
        value: int,
        deadline: int,
        v: int,
        r: SignatureComponent,
        s: SignatureComponent,
        executor: Optional[str] = None,
    ) -> bool:
        """
        Move ``value`` from ``sender`` to ``recipient`` on a signed Transfer.

        Gates run in order: deadline, balance, signature.  ``executor`` is
        recorded on the emitted event only.

        Raises:
            PermitExpiredError: If the current time is past ``deadline``.
            InsufficientFundsError: If ``sender``'s balance is below ``value``.
            MalformedArgumentsError: On malformed arguments or a zero recipient.
            SignatureVerificationError: If the signature does not recover to
                ``sender`` over the current nonce and this token's domain.
        """
        sender = normalize_address(sender, field_name="sender")
        recipient = normalize_address(recipient, field_name="recipient")
        ensure_uint256(value)
        ensure_uint256(deadline, field_name="deadline")
        if recipient == ZERO_ADDRESS:
            raise MalformedArgumentsError("Cannot transfer to the zero address")
        if executor is not None:
            executor = normalize_address(executor, field_name="executor")
        else:
            executor = self.executor

        with self._lock:
            self._check_deadline("Transfer", sender, deadline)

            available = self.ledger.balance_of(sender)
            if available < value:
                logger.warning("Transfer rejected for %s: balance %s < %s", sender, available, value)
                raise InsufficientFundsError(
                    f"Insufficient balance: {sender} holds {available}, needs {value}",
                    required=value,
                    available=available,
                )

            nonce = self._nonces.get(sender, 0)
            digest = self.get_digest(transfer_hash(sender, recipient, value, nonce, deadline))
            self._check_signature("Transfer", digest, v, r, s, sender)

            self._nonces[sender] = nonce + 1
            moved = self.ledger.apply_transfer(sender, recipient, value)
            used = TransferWithPermitEvent(
                sender=sender, recipient=recipient, value=value, nonce=nonce, executor=executor,
            )

            logger.info("Transfer applied: %s sent %s to %s (nonce %s)", sender, value, recipient, nonce)
            self.event_bus.dispatch(moved)
            self.event_bus.dispatch(used)
        return True

    # ------------------------------------------------------------------
    # Authorization model helpers
    # ------------------------------------------------------------------

    def submit_permit(self, authorization: PermitAuthorization) -> None:
        """Apply a signed ``PermitAuthorization`` through ``permit``."""
        if authorization.signature is None:
            raise MalformedArgumentsError("PermitAuthorization carries no signature")
        sig = authorization.signature
        self.permit(
            authorization.owner, authorization.spender, authorization.value, authorization.deadline,
            sig.v, sig.r, sig.s,
        )

    def submit_transfer(self, authorization: TransferAuthorization, executor: Optional[str] = None) -> bool:
        """Apply a signed ``TransferAuthorization`` through ``transfer_with_permit``."""
        if authorization.signature is None:
            raise MalformedArgumentsError("TransferAuthorization carries no signature")
        sig = authorization.signature
        return self.transfer_with_permit(
            authorization.sender, authorization.recipient, authorization.value, authorization.deadline,
            sig.v, sig.r, sig.s, executor=executor,
        )

    def verify_authorization(
        self,
        authorization: Union[PermitAuthorization, TransferAuthorization],
    ) -> EVMVerificationResult:
        """
        Dry-run an authorization against the current state without applying it.

        Never raises: a missing signature or a malformed signer address is
        reported as ``MALFORMED_ARGUMENTS``.

        Returns:
            ``EVMVerificationResult`` from ``verify_permit`` / ``verify_transfer``
            evaluated with this token's domain, nonce store, balance and clock.
        """
        is_permit = isinstance(authorization, PermitAuthorization)
        signer = authorization.owner if is_permit else authorization.sender
        try:
            if authorization.signature is None:
                raise MalformedArgumentsError("Authorization carries no signature")
            account = normalize_address(signer, field_name="owner" if is_permit else "sender")
        except MalformedArgumentsError as exc:
            return EVMVerificationResult(
                status=VerificationStatus.MALFORMED_ARGUMENTS,
                is_valid=False,
                message=str(exc),
                error_details={"error": str(exc)},
                authorized_amount=authorization.value,
            )
        sig = authorization.signature
        with self._lock:
            if is_permit:
                return verify_permit(
                    domain=self.domain,
                    owner=authorization.owner,
                    spender=authorization.spender,
                    value=authorization.value,
                    nonce=authorization.nonce,
                    deadline=authorization.deadline,
                    v=sig.v, r=sig.r, s=sig.s,
                    current_nonce=self._nonces.get(account, 0),
                    current_time=self._clock(),
                    recoverer=self._recoverer,
                )
            return verify_transfer(
                domain=self.domain,
                sender=authorization.sender,
                recipient=authorization.recipient,
                value=authorization.value,
                nonce=authorization.nonce,
                deadline=authorization.deadline,
                v=sig.v, r=sig.r, s=sig.s,
                owner_balance=self.ledger.balance_of(account),
                current_nonce=self._nonces.get(account, 0),
                current_time=self._clock(),
                recoverer=self._recoverer,
            )
