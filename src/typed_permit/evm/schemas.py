"""
EVM Schema Models

Pydantic models for EIP-712 signed authorizations.  All classes inherit from
the base schema hierarchy in ``schemas.bases``.

Signature classes:
    - EVMECDSASignature: v/r/s signature shared by Permit and Transfer
      authorizations (use ``signature_type`` to distinguish).

Authorization classes:
    - PermitAuthorization: signed ``Permit(owner, spender, value, nonce, deadline)``.
    - TransferAuthorization: signed ``Transfer(from, to, value, nonce, deadline)``.

Result classes:
    - EVMVerificationResult: outcome of a result-style verifier.
"""

from typing import Optional, Dict, Any, Literal

from pydantic import Field

from ..schemas.bases import (
    BaseSignature,
    BasePermit,
    BaseVerificationResult,
)
from .standards import EIP712Domain, PermitMessage, TransferMessage


def _strip_hex(value: str) -> str:
    return value[2:] if value[:2].lower() == "0x" else value


def _check_address(field_name: str, address: str) -> None:
    if not address.startswith("0x"):
        raise ValueError(f"'{field_name}' must be 0x-prefixed, got: {address!r}")
    if len(address) != 42:
        raise ValueError(f"'{field_name}' must be 42 chars (0x + 40 hex), got {len(address)}")
    try:
        int(address[2:], 16)
    except ValueError:
        raise ValueError(f"'{field_name}' contains non-hex characters: {address!r}")


class EVMECDSASignature(BaseSignature):
    """
    EVM ECDSA signature (v, r, s).

    Use ``signature_type`` to identify which message kind was signed:

    * ``"EIP712Permit"``   -- ``permit()`` authorizations.
    * ``"EIP712Transfer"`` -- ``transferWithPermit()`` authorizations.

    Attributes:
        signature_type: One of ``"EIP712Permit"``, ``"EIP712Transfer"``.
        v: ECDSA recovery ID (27 or 28).
        r: r component -- 32 bytes as a 64-char hex string (0x prefix optional).
        s: s component -- 32 bytes as a 64-char hex string (0x prefix optional).

    Example::

        sig = EVMECDSASignature(signature_type="EIP712Permit", v=27, r="0x" + "a" * 64, s="0x" + "b" * 64)
        sig.validate_format()
    """

    signature_type: Literal["EIP712Permit", "EIP712Transfer"] = Field(
        ..., description="Signed message kind: 'EIP712Permit' or 'EIP712Transfer'"
    )
    v: int = Field(..., ge=27, le=28, description="ECDSA recovery ID (27 or 28)")
    r: str = Field(..., description="Signature r component (32 bytes, 64-char hex, 0x prefix optional)")
    s: str = Field(..., description="Signature s component (32 bytes, 64-char hex, 0x prefix optional)")

    def validate_format(self) -> bool:
        """
        Validate v/r/s components.

        Checks v is 27 or 28 and that r/s are valid 64-character hex strings
        (0x prefix stripped before length check).

        Returns:
            True when all components pass.

        Raises:
            ValueError: Descriptive message on the first failed check.
        """
        if self.v not in (27, 28):
            raise ValueError(f"Invalid recovery ID: {self.v}. Must be 27 or 28")

        for name, val in [("r", self.r), ("s", self.s)]:
            hex_str = _strip_hex(val)
            if len(hex_str) != 64:
                raise ValueError(f"Invalid {name}: expected 64 hex chars, got {len(hex_str)}")
            try:
                int(hex_str, 16)
            except ValueError:
                raise ValueError(f"Invalid {name}: not valid hexadecimal")

        return True

    @property
    def r_int(self) -> int:
        return int(_strip_hex(self.r), 16)

    @property
    def s_int(self) -> int:
        return int(_strip_hex(self.s), 16)

    def to_packed_hex(self) -> str:
        """
        Encode v/r/s into a packed 65-byte hex string (``r || s || v``).

        Returns:
            0x-prefixed 132-character hex string.

        Raises:
            ValueError: If components do not pass ``validate_format()``.
        """
        self.validate_format()
        r = _strip_hex(self.r).zfill(64)
        s = _strip_hex(self.s).zfill(64)
        return "0x" + r + s + format(self.v, "02x")

    @classmethod
    def from_packed_hex(
        cls,
        packed: str,
        signature_type: Literal["EIP712Permit", "EIP712Transfer"],
    ) -> "EVMECDSASignature":
        """
        Split a packed 65-byte ``r || s || v`` signature.

        A trailing recovery byte of 0 or 1 is normalised to 27 or 28.

        Raises:
            ValueError: If ``packed`` is not 65 bytes of hex.
        """
        hex_str = _strip_hex(packed)
        if len(hex_str) != 130:
            raise ValueError(f"Packed signature must be 65 bytes, got {len(hex_str) // 2}")
        v = int(hex_str[128:], 16)
        if v in (0, 1):
            v += 27
        return cls(
            signature_type=signature_type,
            v=v,
            r="0x" + hex_str[:64],
            s="0x" + hex_str[64:128],
        )


class PermitAuthorization(BasePermit):
    """
    Signed ``Permit`` authorization.

    Lets ``spender`` spend up to ``value`` of ``owner``'s balance once
    presented to ``permit()``.

    Attributes:
        permit_type: Always ``"Permit"``.
        owner: Signing account (0x-prefixed, 42 chars).
        spender: Account receiving the allowance.
        value: Allowance to set, in the token's smallest unit.
        nonce: ``owner``'s nonce at signing time.
        deadline: Unix timestamp after which the authorization is refused.
        chain_id: Chain id of the signing domain.
        verifying_contract: Verifying contract of the signing domain.
        signature: ECDSA signature with ``signature_type='EIP712Permit'``.
    """

    permit_type: Literal["Permit"] = Field(default="Permit", description="Message kind identifier")
    owner: str = Field(..., description="Signing account address (0x-prefixed)")
    spender: str = Field(..., description="Account receiving the allowance")
    value: int = Field(..., ge=0, description="Allowance in the token's smallest unit")
    nonce: int = Field(..., ge=0, description="Owner nonce at signing time")
    deadline: int = Field(..., ge=0, description="Unix timestamp after which the permit expires")
    chain_id: int = Field(..., ge=1, description="Chain id of the signing domain")
    verifying_contract: str = Field(..., description="Verifying contract of the signing domain")
    signature: Optional[EVMECDSASignature] = Field(None, description="ECDSA signature (signature_type='EIP712Permit')")

    def to_message(self) -> PermitMessage:
        return PermitMessage(
            owner=self.owner,
            spender=self.spender,
            value=self.value,
            nonce=self.nonce,
            deadline=self.deadline,
        )

    def validate_structure(self) -> bool:
        """
        Validate addresses and the embedded signature.

        Raises:
            ValueError: With a descriptive message on the first failed check.
        """
        for field_name, address in [
            ("owner", self.owner),
            ("spender", self.spender),
            ("verifying_contract", self.verifying_contract),
        ]:
            _check_address(field_name, address)

        if self.signature is not None:
            try:
                self.signature.validate_format()
            except ValueError as e:
                raise ValueError(f"Signature validation failed: {e}")

        return True


class TransferAuthorization(BasePermit):
    """
    Signed ``Transfer`` authorization.

    Moves ``value`` from ``sender`` to ``recipient`` once presented to
    ``transferWithPermit()``.  ``sender``/``recipient`` map to the ``from``/
    ``to`` members of the typed definition.

    Attributes:
        permit_type: Always ``"Transfer"``.
        sender: Signing account (``from``).
        recipient: Receiving account (``to``).
        value: Amount to move, in the token's smallest unit.
        nonce: ``sender``'s nonce at signing time.
        deadline: Unix timestamp after which the authorization is refused.
        chain_id: Chain id of the signing domain.
        verifying_contract: Verifying contract of the signing domain.
        signature: ECDSA signature with ``signature_type='EIP712Transfer'``.
    """

    permit_type: Literal["Transfer"] = Field(default="Transfer", description="Message kind identifier")
    sender: str = Field(..., description="Signing account address (maps to `from`)")
    recipient: str = Field(..., description="Receiving account address (maps to `to`)")
    value: int = Field(..., ge=0, description="Amount in the token's smallest unit")
    nonce: int = Field(..., ge=0, description="Sender nonce at signing time")
    deadline: int = Field(..., ge=0, description="Unix timestamp after which the transfer expires")
    chain_id: int = Field(..., ge=1, description="Chain id of the signing domain")
    verifying_contract: str = Field(..., description="Verifying contract of the signing domain")
    signature: Optional[EVMECDSASignature] = Field(None, description="ECDSA signature (signature_type='EIP712Transfer')")

    def to_message(self) -> TransferMessage:
        return TransferMessage(
            sender=self.sender,
            recipient=self.recipient,
            value=self.value,
            nonce=self.nonce,
            deadline=self.deadline,
        )

    def validate_structure(self) -> bool:
        """
        Validate addresses and the embedded signature.

        Raises:
            ValueError: With a descriptive message on the first failed check.
        """
        for field_name, address in [
            ("sender", self.sender),
            ("recipient", self.recipient),
            ("verifying_contract", self.verifying_contract),
        ]:
            _check_address(field_name, address)

        if self.signature is not None:
            try:
                self.signature.validate_format()
            except ValueError as e:
                raise ValueError(f"Signature validation failed: {e}")

        return True


def domain_for(authorization: BasePermit, *, name: str, version: str) -> EIP712Domain:
    """Build the signing domain recorded on ``authorization``."""
    return EIP712Domain(
        name=name,
        version=version,
        chainId=authorization.chain_id,
        verifyingContract=authorization.verifying_contract,
    )


class EVMVerificationResult(BaseVerificationResult):
    """
    EVM signature verification result.

    Attributes:
        verification_type: Always ``"evm"``.
        sender: Signing account (owner / from).
        receiver: Spender / to.
        authorized_amount: Value carried by the message.
        recovered_signer: Address recovered from the signature, when recovery succeeded.
        ledger_state: Optional state snapshot supplied by the caller (balance, nonce).
    """

    verification_type: Literal["evm"] = Field(default="evm", description="Verification type identifier")
    sender: Optional[str] = Field(None, description="Signing account address")
    receiver: Optional[str] = Field(None, description="Spender / recipient address")
    authorized_amount: Optional[int] = Field(None, ge=0, description="Value carried by the message")
    recovered_signer: Optional[str] = Field(None, description="Address recovered from the signature")
    ledger_state: Optional[Dict[str, Any]] = Field(None, description="Optional state snapshot (balance, nonce)")
