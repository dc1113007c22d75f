"""
EIP-712 Structured Hashing

Pure functions that turn a domain descriptor and a message instance into the
32-byte digest an account signs.  Everything here is deterministic and free
of state; the state machine in ``typed_permit.token`` only ever feeds it the
nonce it read from its own store.

Encoding
--------
Every member is ABI-encoded as one 32-byte word, in schema order, with no
delimiters:

* ``address``  -- left-padded 20-byte value
* ``uint256``  -- big-endian unsigned integer
* ``string``   -- ``keccak256`` of the UTF-8 bytes

    structHash = keccak(typeHash || enc(field_1) || ... || enc(field_n))
    digest     = keccak(0x19 0x01 || domainSeparator || structHash)

Exported helpers
----------------
domain_separator
    Hash an ``EIP712Domain``.
struct_hash / message_hash
    Hash a message instance under its ``TypeSchema``.
permit_hash / transfer_hash
    Field-by-field shortcuts for the two supported message kinds.
typed_data_digest / hash_typed_data
    Assemble the final signable digest.
"""

import logging
from typing import Any, Mapping, Union, List, Tuple

from eth_abi import encode
from eth_utils import keccak, is_address, to_checksum_address

from .standards import (
    TypeSchema,
    EIP712Domain,
    EIP712TypedData,
    EIP712_DOMAIN_SCHEMA,
    PERMIT_SCHEMA,
    TRANSFER_SCHEMA,
    MessageTypes,
)
from ..engine.exceptions import MalformedArgumentsError

logger = logging.getLogger(__name__)

#: Largest value representable by a ``uint256`` word.
UINT256_MAX: int = 2**256 - 1

#: EIP-191 version byte 0x01 prefix marking structured data.
EIP712_PREFIX: bytes = b"\x19\x01"

ZERO_ADDRESS: str = "0x0000000000000000000000000000000000000000"

# ---------------------------------------------------------------------------
# Field normalisation
# ---------------------------------------------------------------------------


def normalize_address(addr: Union[str, bytes], *, field_name: str = "address") -> str:
    """
    Return ``addr`` as a checksum address.

    Accepts 0x-prefixed hex strings (all-lowercase, all-uppercase or valid
    checksum) and raw 20-byte values.

    Raises:
        MalformedArgumentsError: If ``addr`` is not a 20-byte address or is
            mixed-case with a wrong checksum.
    """
    if isinstance(addr, (bytes, bytearray)):
        if len(addr) != 20:
            raise MalformedArgumentsError(f"{field_name} must be 20 bytes, got {len(addr)}")
        return to_checksum_address(bytes(addr))
    if not isinstance(addr, str) or not is_address(addr):
        raise MalformedArgumentsError(f"Invalid {field_name} address: {addr!r}")
    return to_checksum_address(addr)


def ensure_uint256(value: Any, *, field_name: str = "value") -> int:
    """
    Check that ``value`` fits an ``uint256`` word.

    Raises:
        MalformedArgumentsError: On non-integers, booleans, negatives or
            values above ``2**256 - 1``.
    """
    if isinstance(value, bool) or not isinstance(value, int):
        raise MalformedArgumentsError(f"{field_name} must be an integer, got {type(value).__name__}")
    if value < 0 or value > UINT256_MAX:
        raise MalformedArgumentsError(f"{field_name} out of uint256 range: {value}")
    return value


def as_bytes32(value: Union[bytes, str], *, field_name: str = "hash") -> bytes:
    """
    Coerce a 32-byte value given as ``bytes`` or 0x-prefixed hex.

    Raises:
        MalformedArgumentsError: If the value is not exactly 32 bytes.
    """
    if isinstance(value, str):
        hex_str = value[2:] if value[:2].lower() == "0x" else value
        try:
            value = bytes.fromhex(hex_str)
        except ValueError:
            raise MalformedArgumentsError(f"{field_name} is not valid hexadecimal")
    if not isinstance(value, (bytes, bytearray)) or len(value) != 32:
        raise MalformedArgumentsError(f"{field_name} must be exactly 32 bytes")
    return bytes(value)


def _encode_field(type_: str, name: str, value: Any) -> Tuple[str, Any]:
    if type_ == "address":
        return "address", normalize_address(value, field_name=name)
    if type_ == "uint256":
        return "uint256", ensure_uint256(value, field_name=name)
    if type_ == "string":
        if not isinstance(value, str):
            raise MalformedArgumentsError(f"{name} must be a string")
        return "bytes32", keccak(text=value)
    raise MalformedArgumentsError(f"Unsupported member type {type_!r} for {name}")


# ---------------------------------------------------------------------------
# Struct hashing
# ---------------------------------------------------------------------------


def struct_hash(schema: TypeSchema, values: Mapping[str, Any]) -> bytes:
    """
    Hash a message instance under ``schema``.

    Args:
        schema: The struct's ``TypeSchema``.
        values: Mapping of member name to value; must contain every member.

    Returns:
        32-byte ``keccak(typeHash || enc(members...))``.

    Raises:
        MalformedArgumentsError: If a member is missing or cannot be encoded.
    """
    abi_types: List[str] = ["bytes32"]
    abi_values: List[Any] = [schema.type_hash]
    for name, type_ in schema.fields:
        if name not in values:
            raise MalformedArgumentsError(f"{schema.primary_type} is missing member {name!r}")
        abi_type, abi_value = _encode_field(type_, name, values[name])
        abi_types.append(abi_type)
        abi_values.append(abi_value)
    return keccak(encode(abi_types, abi_values))


def message_hash(message: MessageTypes) -> bytes:
    """Hash a ``PermitMessage`` or ``TransferMessage`` under its own schema."""
    return struct_hash(message.SCHEMA, message.to_dict())


def domain_separator(domain: EIP712Domain) -> bytes:
    """
    Compute the EIP-712 domain separator.

    Identical domain parameters always give an identical hash; changing the
    chain id or verifying contract changes it.
    """
    separator = struct_hash(EIP712_DOMAIN_SCHEMA, domain.to_dict())
    logger.debug(
        "Domain separator for %s v%s on chain %s at %s: 0x%s",
        domain.name, domain.version, domain.chainId, domain.verifyingContract, separator.hex(),
    )
    return separator


def permit_hash(owner: str, spender: str, value: int, nonce: int, deadline: int) -> bytes:
    """Structured hash of ``Permit(owner, spender, value, nonce, deadline)``."""
    return struct_hash(
        PERMIT_SCHEMA,
        {"owner": owner, "spender": spender, "value": value, "nonce": nonce, "deadline": deadline},
    )


def transfer_hash(sender: str, recipient: str, value: int, nonce: int, deadline: int) -> bytes:
    """Structured hash of ``Transfer(from, to, value, nonce, deadline)``."""
    return struct_hash(
        TRANSFER_SCHEMA,
        {"from": sender, "to": recipient, "value": value, "nonce": nonce, "deadline": deadline},
    )


# ---------------------------------------------------------------------------
# Digest assembly
# ---------------------------------------------------------------------------


def typed_data_digest(separator: Union[bytes, str], structured_hash: Union[bytes, str]) -> bytes:
    """
    Assemble the signable digest ``keccak(0x1901 || separator || structHash)``.

    Args:
        separator: 32-byte domain separator.
        structured_hash: 32-byte struct hash.

    Raises:
        MalformedArgumentsError: If either input is not exactly 32 bytes.
    """
    sep = as_bytes32(separator, field_name="domain separator")
    body = as_bytes32(structured_hash, field_name="struct hash")
    digest = keccak(EIP712_PREFIX + sep + body)
    logger.debug("Digest for struct hash 0x%s: 0x%s", body.hex(), digest.hex())
    return digest


def hash_typed_data(typed_data: EIP712TypedData) -> bytes:
    """Digest of a full typed-data envelope."""
    return typed_data_digest(domain_separator(typed_data.domain), message_hash(typed_data.message))
