from .evm.standards import EIP712Domain
from .token.permit_token import PermitToken
from .token.ledger import TokenLedger

__all__ = [
    "EIP712Domain",
    "PermitToken",
    "TokenLedger",
]
