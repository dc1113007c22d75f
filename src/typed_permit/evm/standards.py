from dataclasses import dataclass, field
from functools import cached_property
from typing import Dict, Any, List, Tuple, Union, ClassVar

from eth_utils import keccak


# -----------------------------
# Type schemas
# -----------------------------

@dataclass(frozen=True)
class TypeSchema:
    """
    Fixed, ordered description of one EIP-712 struct.

    The field order is part of the hash: ``encode_type()`` and the struct
    encoding both walk ``fields`` in declaration order.

    Attributes:
        primary_type: Struct name (e.g. ``"Permit"``).
        fields: Ordered ``(name, solidity_type)`` pairs.
    """
    primary_type: str
    fields: Tuple[Tuple[str, str], ...]

    def encode_type(self) -> str:
        """Return the canonical type string, e.g. ``Permit(address owner,...)``."""
        members = ",".join(f"{type_} {name}" for name, type_ in self.fields)
        return f"{self.primary_type}({members})"

    @cached_property
    def type_hash(self) -> bytes:
        """Keccak-256 of ``encode_type()``."""
        return keccak(text=self.encode_type())

    def to_types_entry(self) -> List[Dict[str, str]]:
        """Render the schema in the ``types`` layout used by ``eth_signTypedData_v4``."""
        return [{"name": name, "type": type_} for name, type_ in self.fields]


EIP712_DOMAIN_SCHEMA = TypeSchema(
    primary_type="EIP712Domain",
    fields=(
        ("name", "string"),
        ("version", "string"),
        ("chainId", "uint256"),
        ("verifyingContract", "address"),
    ),
)

PERMIT_SCHEMA = TypeSchema(
    primary_type="Permit",
    fields=(
        ("owner", "address"),
        ("spender", "address"),
        ("value", "uint256"),
        ("nonce", "uint256"),
        ("deadline", "uint256"),
    ),
)

TRANSFER_SCHEMA = TypeSchema(
    primary_type="Transfer",
    fields=(
        ("from", "address"),
        ("to", "address"),
        ("value", "uint256"),
        ("nonce", "uint256"),
        ("deadline", "uint256"),
    ),
)

#: Type hashes, derived once at import.
EIP712_DOMAIN_TYPEHASH: bytes = EIP712_DOMAIN_SCHEMA.type_hash
PERMIT_TYPEHASH: bytes = PERMIT_SCHEMA.type_hash
TRANSFER_TYPEHASH: bytes = TRANSFER_SCHEMA.type_hash


# -----------------------------
# EIP-712 Domain
# -----------------------------

@dataclass(frozen=True)
class EIP712Domain:
    """
    EIP-712 domain descriptor.
    Binds a signature to one application instance on one chain.
    """
    name: str
    version: str
    chainId: int
    verifyingContract: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "version": self.version,
            "chainId": self.chainId,
            "verifyingContract": self.verifyingContract,
        }


# -----------------------------
# Permit Message
# -----------------------------

@dataclass
class PermitMessage:
    """
    Permit message: ``owner`` lets ``spender`` spend ``value``.
    """
    owner: str
    spender: str
    value: int
    nonce: int
    deadline: int

    SCHEMA: ClassVar[TypeSchema] = PERMIT_SCHEMA

    def to_dict(self) -> Dict[str, Any]:
        return {
            "owner": self.owner,
            "spender": self.spender,
            "value": self.value,
            "nonce": self.nonce,
            "deadline": self.deadline,
        }


# -----------------------------
# Transfer Message
# -----------------------------

@dataclass
class TransferMessage:
    """
    Transfer message: ``sender`` moves ``value`` to ``recipient``.

    The typed definition names its first two members ``from`` and ``to``;
    ``from`` is a Python reserved word, so this class uses ``sender`` and
    ``recipient`` and maps them back in ``to_dict()``.
    """
    sender: str
    recipient: str
    value: int
    nonce: int
    deadline: int

    SCHEMA: ClassVar[TypeSchema] = TRANSFER_SCHEMA

    def to_dict(self) -> Dict[str, Any]:
        return {
            "from": self.sender,
            "to": self.recipient,
            "value": self.value,
            "nonce": self.nonce,
            "deadline": self.deadline,
        }


MessageTypes = Union[PermitMessage, TransferMessage]


# -----------------------------
# EIP-712 Typed Data Wrapper
# -----------------------------

@dataclass
class EIP712TypedData:
    """
    EIP-712 typed data envelope for a Permit or Transfer message.

    ``to_dict()`` produces the ``{types, primaryType, domain, message}``
    layout accepted by ``eth_account.Account.sign_typed_data`` and by wallets
    implementing ``eth_signTypedData_v4``.
    """
    domain: EIP712Domain
    message: MessageTypes

    types: Dict[str, List[Dict[str, str]]] = field(init=False)

    def __post_init__(self):
        schema = self.message.SCHEMA
        self.types = {
            EIP712_DOMAIN_SCHEMA.primary_type: EIP712_DOMAIN_SCHEMA.to_types_entry(),
            schema.primary_type: schema.to_types_entry(),
        }

    @property
    def primary_type(self) -> str:
        return self.message.SCHEMA.primary_type

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert the typed data into a dict compatible with EIP-712 signing.
        """
        return {
            "types": self.types,
            "primaryType": self.primary_type,
            "domain": self.domain.to_dict(),
            "message": self.message.to_dict(),
        }
