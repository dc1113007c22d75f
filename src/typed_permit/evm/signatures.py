"""
EVM Off-Chain Signing Utilities

Local EIP-712 signing helpers for ``Permit`` and ``Transfer``
authorizations.  All cryptographic operations are performed in-process using
``eth_account``; no RPC calls or on-chain state queries are made.

Exported helpers
----------------
build_permit_typed_data / build_transfer_typed_data
    Wrap message fields in an ``EIP712TypedData`` envelope without signing.
    Useful when the signing step is handled externally (e.g. a hardware
    wallet calling ``eth_signTypedData_v4``).

sign_permit / sign_transfer
    Build the envelope, sign with a private key, and return a complete
    ``PermitAuthorization`` / ``TransferAuthorization`` carrying an
    ``EVMECDSASignature`` (v, r, s).

recover_typed_data_signer
    Recover the signer of an envelope through ``eth_account``'s own
    typed-data encoder.  Lets a relayer check a wallet's signature before
    submitting it.
"""

import time
from typing import Optional

from eth_account import Account
from eth_account.messages import encode_typed_data

from .standards import (
    EIP712Domain,
    EIP712TypedData,
    PermitMessage,
    TransferMessage,
)
from .schemas import EVMECDSASignature, PermitAuthorization, TransferAuthorization
from .verifies import SignatureComponent, validate_signature_components
from .hashing import normalize_address

#: Default validity window applied when no deadline is supplied.
DEFAULT_VALIDITY_SECONDS: int = 3600


def _resolve_signer(private_key: str, claimed: Optional[str], role: str) -> str:
    address = Account.from_key(private_key).address
    if claimed is not None and normalize_address(claimed, field_name=role) != address:
        raise ValueError(
            f"{role} ({claimed}) does not match the address derived from private_key ({address})"
        )
    return address


def _signature_from_signed(signed, signature_type) -> EVMECDSASignature:
    return EVMECDSASignature(
        signature_type=signature_type,
        v=signed.v,
        r="0x" + signed.r.to_bytes(32, "big").hex(),
        s="0x" + signed.s.to_bytes(32, "big").hex(),
    )


# ---------------------------------------------------------------------------
# Typed-data builders
# ---------------------------------------------------------------------------

def build_permit_typed_data(
    *,
    domain: EIP712Domain,
    owner: str,
    spender: str,
    value: int,
    nonce: int,
    deadline: int,
) -> EIP712TypedData:
    """
    Wrap Permit fields in an EIP-712 envelope without signing.

    Args:
        domain:   Signing domain of the verifying contract.
        owner:    Signing account.
        spender:  Account receiving the allowance.
        value:    Allowance in the token's smallest unit.
        nonce:    Current nonce of ``owner`` (read it with ``get_nonce``).
        deadline: Expiry Unix timestamp.

    Returns:
        ``EIP712TypedData`` whose ``to_dict()`` is compatible with
        ``eth_account.Account.sign_typed_data`` and ``eth_signTypedData_v4``.

    Example::

        typed_data = build_permit_typed_data(
            domain=token.domain, owner=owner, spender=spender,
            value=1000, nonce=token.get_nonce(owner), deadline=now + 3600,
        )
        payload = typed_data.to_dict()   # hand off to external signer
    """
    message = PermitMessage(
        owner=normalize_address(owner, field_name="owner"),
        spender=normalize_address(spender, field_name="spender"),
        value=value,
        nonce=nonce,
        deadline=deadline,
    )
    return EIP712TypedData(domain=domain, message=message)


def build_transfer_typed_data(
    *,
    domain: EIP712Domain,
    sender: str,
    recipient: str,
    value: int,
    nonce: int,
    deadline: int,
) -> EIP712TypedData:
    """
    Wrap Transfer fields in an EIP-712 envelope without signing.

    ``sender`` and ``recipient`` become the ``from`` and ``to`` members.
    """
    message = TransferMessage(
        sender=normalize_address(sender, field_name="sender"),
        recipient=normalize_address(recipient, field_name="recipient"),
        value=value,
        nonce=nonce,
        deadline=deadline,
    )
    return EIP712TypedData(domain=domain, message=message)


# ---------------------------------------------------------------------------
# Signers
# ---------------------------------------------------------------------------

def sign_permit(
    *,
    private_key: str,
    domain: EIP712Domain,
    spender: str,
    value: int,
    nonce: int,
    deadline: Optional[int] = None,
    owner: Optional[str] = None,
) -> PermitAuthorization:
    """
    Sign a Permit and return a ``PermitAuthorization`` with the signature attached.

    Args:
        private_key: Hex-encoded secp256k1 private key of the owner.
        domain:      Signing domain of the verifying contract.
        spender:     Account receiving the allowance.
        value:       Allowance in the token's smallest unit.
        nonce:       Current nonce of the owner.
        deadline:    Expiry Unix timestamp; defaults to now + 1 hour.
        owner:       Optional owner address; must match ``private_key``
                     when supplied.

    Returns:
        ``PermitAuthorization`` with ``signature`` populated (v, r, s).

    Raises:
        ValueError: If ``owner`` does not match ``private_key``.

    Example::

        auth = sign_permit(
            private_key="0xYOUR_PRIVATE_KEY",
            domain=token.domain,
            spender="0xSpender",
            value=1000,
            nonce=token.get_nonce("0xYourAddress"),
        )
        sig = auth.signature
        token.permit(auth.owner, auth.spender, auth.value, auth.deadline, sig.v, sig.r, sig.s)
    """
    resolved_owner = _resolve_signer(private_key, owner, "owner")
    resolved_deadline = deadline if deadline is not None else int(time.time()) + DEFAULT_VALIDITY_SECONDS

    typed_data = build_permit_typed_data(
        domain=domain,
        owner=resolved_owner,
        spender=spender,
        value=value,
        nonce=nonce,
        deadline=resolved_deadline,
    )
    signed = Account.sign_typed_data(private_key, full_message=typed_data.to_dict())

    return PermitAuthorization(
        owner=resolved_owner,
        spender=typed_data.message.spender,
        value=value,
        nonce=nonce,
        deadline=resolved_deadline,
        chain_id=domain.chainId,
        verifying_contract=domain.verifyingContract,
        signature=_signature_from_signed(signed, "EIP712Permit"),
    )


def sign_transfer(
    *,
    private_key: str,
    domain: EIP712Domain,
    recipient: str,
    value: int,
    nonce: int,
    deadline: Optional[int] = None,
    sender: Optional[str] = None,
) -> TransferAuthorization:
    """
    Sign a Transfer and return a ``TransferAuthorization`` with the signature attached.

    Args:
        private_key: Hex-encoded secp256k1 private key of the sender.
        domain:      Signing domain of the verifying contract.
        recipient:   Receiving account.
        value:       Amount in the token's smallest unit.
        nonce:       Current nonce of the sender.
        deadline:    Expiry Unix timestamp; defaults to now + 1 hour.
        sender:      Optional sender address; must match ``private_key``
                     when supplied.

    Returns:
        ``TransferAuthorization`` with ``signature`` populated (v, r, s).

    Raises:
        ValueError: If ``sender`` does not match ``private_key``.
    """
    resolved_sender = _resolve_signer(private_key, sender, "sender")
    resolved_deadline = deadline if deadline is not None else int(time.time()) + DEFAULT_VALIDITY_SECONDS

    typed_data = build_transfer_typed_data(
        domain=domain,
        sender=resolved_sender,
        recipient=recipient,
        value=value,
        nonce=nonce,
        deadline=resolved_deadline,
    )
    signed = Account.sign_typed_data(private_key, full_message=typed_data.to_dict())

    return TransferAuthorization(
        sender=resolved_sender,
        recipient=typed_data.message.recipient,
        value=value,
        nonce=nonce,
        deadline=resolved_deadline,
        chain_id=domain.chainId,
        verifying_contract=domain.verifyingContract,
        signature=_signature_from_signed(signed, "EIP712Transfer"),
    )


def recover_typed_data_signer(
    typed_data: EIP712TypedData,
    v: int,
    r: SignatureComponent,
    s: SignatureComponent,
) -> str:
    """
    Recover the address that signed ``typed_data``.

    Encoding is delegated to ``eth_account.messages.encode_typed_data`` so
    the result reflects exactly what a standard wallet signed.

    Raises:
        MalformedArgumentsError: If (v, r, s) is out of range.
    """
    v_norm, r_int, s_int = validate_signature_components(v, r, s)
    signable = encode_typed_data(full_message=typed_data.to_dict())
    return Account.recover_message(signable, vrs=(v_norm, r_int, s_int))
