"""
EVM Signature Verification Helpers

Signer recovery and off-chain verification for EIP-712 Permit and Transfer
authorizations.  Recovery is pure computation over secp256k1 using
``eth_keys``; no RPC calls are made.

Recovery is exposed through the ``SignerRecoverer`` protocol so that the
authorization state machine can be driven by a scripted recoverer in tests.
``EthKeysRecoverer`` is the production implementation.

Exported helpers
----------------
validate_signature_components
    Range-check (v, r, s); raises ``MalformedArgumentsError``.
recover_signer / verify_signer
    Recover the signing address of a digest and compare it to a claimed
    signer.  Both fail closed: malformed input recovers to ``None``.
verify_permit / verify_transfer
    Result-style verifiers that never raise; they run every gate the state
    machine would run against caller-supplied state and return an
    ``EVMVerificationResult``.
"""

import logging
import time
from typing import Any, Dict, Optional, Protocol, Tuple, Union

from eth_keys import keys
from eth_keys.exceptions import BadSignature, ValidationError as EthKeysValidationError

from .hashing import (
    ZERO_ADDRESS,
    domain_separator,
    permit_hash,
    transfer_hash,
    typed_data_digest,
    normalize_address,
    ensure_uint256,
)
from .schemas import EVMVerificationResult
from .standards import EIP712Domain
from ..schemas.bases import VerificationStatus
from ..engine.exceptions import MalformedArgumentsError

logger = logging.getLogger(__name__)

#: Order of the secp256k1 group.
SECP256K1_N: int = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141

#: Upper bound for ``s`` in a canonical (low-s) signature.
SECP256K1_HALF_N: int = SECP256K1_N // 2

SignatureComponent = Union[int, str, bytes]

# ---------------------------------------------------------------------------
# Component parsing
# ---------------------------------------------------------------------------


def _component_to_int(value: SignatureComponent, name: str) -> int:
    if isinstance(value, bool):
        raise MalformedArgumentsError(f"Signature {name} must not be a boolean")
    if isinstance(value, int):
        return value
    if isinstance(value, (bytes, bytearray)):
        if len(value) != 32:
            raise MalformedArgumentsError(f"Signature {name} must be 32 bytes, got {len(value)}")
        return int.from_bytes(value, "big")
    if isinstance(value, str):
        hex_str = value[2:] if value[:2].lower() == "0x" else value
        if not hex_str or len(hex_str) > 64:
            raise MalformedArgumentsError(f"Signature {name} must be at most 32 bytes of hex")
        try:
            return int(hex_str, 16)
        except ValueError:
            raise MalformedArgumentsError(f"Signature {name} is not valid hexadecimal")
    raise MalformedArgumentsError(f"Unsupported type for signature {name}: {type(value).__name__}")


def normalize_recovery_id(v: int) -> int:
    """Map a raw recovery id of 0/1 to 27/28; other values pass through."""
    if isinstance(v, bool) or not isinstance(v, int):
        raise MalformedArgumentsError(f"Signature v must be an integer, got {type(v).__name__}")
    return v + 27 if v in (0, 1) else v


def validate_signature_components(
    v: int,
    r: SignatureComponent,
    s: SignatureComponent,
) -> Tuple[int, int, int]:
    """
    Range-check an ECDSA signature.

    Accepts ``v`` in {0, 1, 27, 28}, and ``r``/``s`` as ints, 32-byte values
    or hex strings.  ``s`` must be in the lower half of the curve order so
    that each message has exactly one accepted signature per key.

    Returns:
        ``(v, r, s)`` as integers with ``v`` normalised to 27/28.

    Raises:
        MalformedArgumentsError: On the first component out of range.
    """
    v_norm = normalize_recovery_id(v)
    if v_norm not in (27, 28):
        raise MalformedArgumentsError(f"Invalid recovery ID: {v}. Must be 27 or 28")

    r_int = _component_to_int(r, "r")
    s_int = _component_to_int(s, "s")
    if not 0 < r_int < SECP256K1_N:
        raise MalformedArgumentsError("Signature r is outside the secp256k1 scalar range")
    if not 0 < s_int < SECP256K1_N:
        raise MalformedArgumentsError("Signature s is outside the secp256k1 scalar range")
    if s_int > SECP256K1_HALF_N:
        raise MalformedArgumentsError("Signature s is in the upper half of the curve order")

    return v_norm, r_int, s_int


# ---------------------------------------------------------------------------
# Recovery
# ---------------------------------------------------------------------------


class SignerRecoverer(Protocol):
    """
    Recovers the signing address of a 32-byte digest.

    Implementations must be pure and must not raise on malformed
    signatures: they return ``None`` instead.
    """

    def recover(
        self,
        digest: bytes,
        v: int,
        r: SignatureComponent,
        s: SignatureComponent,
    ) -> Optional[str]:
        ...


class EthKeysRecoverer:
    """``SignerRecoverer`` backed by ``eth_keys`` public-key recovery."""

    def recover(
        self,
        digest: bytes,
        v: int,
        r: SignatureComponent,
        s: SignatureComponent,
    ) -> Optional[str]:
        if not isinstance(digest, (bytes, bytearray)) or len(digest) != 32:
            logger.debug("Recovery refused: digest is not 32 bytes")
            return None
        try:
            v_norm = normalize_recovery_id(v)
            r_int = _component_to_int(r, "r")
            s_int = _component_to_int(s, "s")
            if v_norm not in (27, 28) or not 0 < r_int < SECP256K1_N or not 0 < s_int < SECP256K1_N:
                logger.debug("Recovery refused: signature components out of range")
                return None
            signature = keys.Signature(vrs=(v_norm - 27, r_int, s_int))
            public_key = signature.recover_public_key_from_msg_hash(bytes(digest))
        except (MalformedArgumentsError, BadSignature, EthKeysValidationError, ValueError) as exc:
            logger.debug("Recovery failed: %s", exc)
            return None
        return public_key.to_checksum_address()


_DEFAULT_RECOVERER = EthKeysRecoverer()


def recover_signer(
    digest: bytes,
    v: int,
    r: SignatureComponent,
    s: SignatureComponent,
    *,
    recoverer: Optional[SignerRecoverer] = None,
) -> Optional[str]:
    """
    Recover the address that signed ``digest``.

    Returns:
        Checksum address, or ``None`` when the signature cannot be recovered.
    """
    return (recoverer or _DEFAULT_RECOVERER).recover(digest, v, r, s)


def verify_signer(
    digest: bytes,
    v: int,
    r: SignatureComponent,
    s: SignatureComponent,
    expected: str,
    *,
    recoverer: Optional[SignerRecoverer] = None,
) -> bool:
    """
    Check that ``digest`` was signed by ``expected``.

    Succeeds iff recovery produced an address, that address is not the zero
    address, and it equals ``expected`` (case-insensitive).
    """
    recovered = recover_signer(digest, v, r, s, recoverer=recoverer)
    if recovered is None or recovered.lower() == ZERO_ADDRESS:
        return False
    return isinstance(expected, str) and recovered.lower() == expected.lower()


# ---------------------------------------------------------------------------
# Result-style verification
# ---------------------------------------------------------------------------


def _verify_authorization(
    *,
    kind: str,
    domain: EIP712Domain,
    signer: str,
    counterparty: str,
    value: int,
    nonce: int,
    deadline: int,
    v: int,
    r: SignatureComponent,
    s: SignatureComponent,
    owner_balance: Optional[int],
    current_nonce: Optional[int],
    current_time: Optional[int],
    recoverer: Optional[SignerRecoverer],
) -> EVMVerificationResult:
    now = int(current_time) if current_time is not None else int(time.time())

    ledger_state: Dict[str, Any] = {}
    if owner_balance is not None:
        ledger_state["owner_balance"] = owner_balance
    if current_nonce is not None:
        ledger_state["current_nonce"] = current_nonce

    amount = value if isinstance(value, int) and not isinstance(value, bool) and value >= 0 else None

    def _fail(
        status: VerificationStatus,
        message: str,
        error_details: Optional[Dict[str, Any]] = None,
        recovered: Optional[str] = None,
    ) -> EVMVerificationResult:
        logger.debug("%s verification failed for %s: %s", kind, signer, message)
        return EVMVerificationResult(
            status=status,
            is_valid=False,
            message=message,
            error_details=error_details,
            sender=signer if isinstance(signer, str) else None,
            receiver=counterparty if isinstance(counterparty, str) else None,
            authorized_amount=amount,
            recovered_signer=recovered,
            ledger_state=ledger_state or None,
        )

    # ------------------------------------------------------------------
    # 1. Argument format
    # ------------------------------------------------------------------
    try:
        normalize_address(signer, field_name="signer")
        normalize_address(counterparty, field_name="counterparty")
        for field_name, number in [("value", value), ("nonce", nonce), ("deadline", deadline)]:
            ensure_uint256(number, field_name=field_name)
        v_norm, r_int, s_int = validate_signature_components(v, r, s)
    except MalformedArgumentsError as exc:
        return _fail(VerificationStatus.MALFORMED_ARGUMENTS, str(exc), {"error": str(exc)})

    # ------------------------------------------------------------------
    # 2. Deadline
    # ------------------------------------------------------------------
    if now > deadline:
        return _fail(
            VerificationStatus.EXPIRED,
            f"Authorization has expired: current_time={now} > deadline={deadline}.",
            {"current_time": now, "deadline": deadline},
        )

    # ------------------------------------------------------------------
    # 3. Balance sufficiency
    # ------------------------------------------------------------------
    if owner_balance is not None and int(owner_balance) < value:
        return _fail(
            VerificationStatus.INSUFFICIENT_BALANCE,
            f"Insufficient balance: owner_balance={owner_balance} < value={value}.",
            {"owner_balance": owner_balance, "value": value},
        )

    # ------------------------------------------------------------------
    # 4. Nonce consistency
    # ------------------------------------------------------------------
    if current_nonce is not None and int(current_nonce) != nonce:
        return _fail(
            VerificationStatus.REPLAY_ATTACK,
            "Nonce mismatch: authorization nonce does not match the account's current nonce.",
            {"provided_nonce": nonce, "current_nonce": current_nonce},
        )

    # ------------------------------------------------------------------
    # 5. Signature recovery
    # ------------------------------------------------------------------
    try:
        separator = domain_separator(domain)
    except MalformedArgumentsError as exc:
        return _fail(VerificationStatus.MALFORMED_ARGUMENTS, f"Invalid domain: {exc}", {"error": str(exc)})

    if kind == "Permit":
        structured = permit_hash(signer, counterparty, value, nonce, deadline)
    else:
        structured = transfer_hash(signer, counterparty, value, nonce, deadline)
    digest = typed_data_digest(separator, structured)

    recovered = recover_signer(digest, v_norm, r_int, s_int, recoverer=recoverer)
    if recovered is None or recovered.lower() == ZERO_ADDRESS:
        return _fail(
            VerificationStatus.INVALID_SIGNATURE,
            "Signature invalid: no signer could be recovered.",
            {"expected": signer},
        )
    if recovered.lower() != signer.lower():
        return _fail(
            VerificationStatus.INVALID_SIGNATURE,
            f"Signature invalid: signer does not match {'owner' if kind == 'Permit' else 'sender'}.",
            {"expected": signer, "recovered": recovered},
            recovered=recovered,
        )

    # ------------------------------------------------------------------
    # All checks passed.
    # ------------------------------------------------------------------
    return EVMVerificationResult(
        status=VerificationStatus.SUCCESS,
        is_valid=True,
        message=f"{kind} valid: signer verified.",
        sender=signer,
        receiver=counterparty,
        authorized_amount=value,
        recovered_signer=recovered,
        ledger_state=ledger_state or None,
    )


def verify_permit(
    *,
    domain: EIP712Domain,
    owner: str,
    spender: str,
    value: int,
    nonce: int,
    deadline: int,
    v: int,
    r: SignatureComponent,
    s: SignatureComponent,
    current_nonce: Optional[int] = None,
    current_time: Optional[int] = None,
    recoverer: Optional[SignerRecoverer] = None,
) -> EVMVerificationResult:
    """
    Verify a Permit authorization without applying it.

    Performs the following checks in order, returning on the first failure:

    1. **Format** -- addresses, uint256 ranges and (v, r, s) ranges.
    2. **Deadline** -- ``current_time`` must not be past ``deadline``.
    3. **Nonce** -- when ``current_nonce`` is supplied it must equal ``nonce``.
    4. **Signature** -- the signer recovered from the EIP-712 digest must be
       ``owner``.

    Args:
        domain:        Signing domain of the verifying contract.
        owner:         Signing account.
        spender:       Account receiving the allowance.
        value:         Allowance carried by the message.
        nonce:         Nonce the owner signed over.
        deadline:      Expiry Unix timestamp.
        v, r, s:       ECDSA signature components.
        current_nonce: Optional current nonce of ``owner``.
        current_time:  Optional Unix timestamp; defaults to ``int(time.time())``.
        recoverer:     Optional ``SignerRecoverer``; defaults to ``EthKeysRecoverer``.

    Returns:
        ``EVMVerificationResult``; ``is_valid=True`` only when every check passes.
    """
    return _verify_authorization(
        kind="Permit",
        domain=domain,
        signer=owner,
        counterparty=spender,
        value=value,
        nonce=nonce,
        deadline=deadline,
        v=v, r=r, s=s,
        owner_balance=None,
        current_nonce=current_nonce,
        current_time=current_time,
        recoverer=recoverer,
    )


def verify_transfer(
    *,
    domain: EIP712Domain,
    sender: str,
    recipient: str,
    value: int,
    nonce: int,
    deadline: int,
    v: int,
    r: SignatureComponent,
    s: SignatureComponent,
    owner_balance: Optional[int] = None,
    current_nonce: Optional[int] = None,
    current_time: Optional[int] = None,
    recoverer: Optional[SignerRecoverer] = None,
) -> EVMVerificationResult:
    """
    Verify a Transfer authorization without applying it.

    Same checks as ``verify_permit`` plus, when ``owner_balance`` is
    supplied, a ``owner_balance >= value`` check before the nonce check.

    Returns:
        ``EVMVerificationResult``; ``is_valid=True`` only when every check passes.
    """
    return _verify_authorization(
        kind="Transfer",
        domain=domain,
        signer=sender,
        counterparty=recipient,
        value=value,
        nonce=nonce,
        deadline=deadline,
        v=v, r=r, s=s,
        owner_balance=owner_balance,
        current_nonce=current_nonce,
        current_time=current_time,
        recoverer=recoverer,
    )
